import json

import pytest

from fakes import SITE, FakeOpenAI, status_error, timeout_error
from pierre_chat.api.chat import get_chat_service
from pierre_chat.errors import PersistenceError
from pierre_chat.main import app
from pierre_chat.services.chat import ChatService

URL = "/api/chat"
LOCAL = "http://localhost:5173"


class BrokenSink:
    def insert(self, record):
        raise PersistenceError(detail="relation order_request does not exist")


def assert_cors(resp, origin):
    assert resp.headers["access-control-allow-origin"] == origin
    assert resp.headers["vary"] == "Origin"
    assert resp.headers["access-control-allow-methods"] == "POST, OPTIONS"
    assert resp.headers["access-control-allow-headers"] == "Content-Type, Authorization"


def test_health(make_client):
    resp = make_client().get("/")
    assert resp.json() == {"status": "ok", "service": "travauxpierre-chat"}


def test_preflight(make_client):
    fake = FakeOpenAI()
    resp = make_client(fake).options(URL, headers={"Origin": LOCAL})
    assert resp.status_code == 204
    assert resp.content == b""
    assert_cors(resp, LOCAL)
    assert fake.calls == []


def test_unknown_origin_gets_default(make_client):
    resp = make_client(FakeOpenAI("ok")).post(URL, json={"message": "salut"}, headers={"Origin": "https://evil.example"})
    assert resp.status_code == 200
    assert_cors(resp, SITE)


@pytest.mark.parametrize("method", ["get", "put", "delete"])
def test_wrong_method(make_client, method):
    resp = getattr(make_client(), method)(URL, headers={"Origin": LOCAL})
    assert resp.status_code == 405
    assert resp.json() == {"error": "Use POST"}
    assert_cors(resp, LOCAL)


def test_head_is_405_with_cors(make_client):
    resp = make_client().head(URL, headers={"Origin": LOCAL})
    assert resp.status_code == 405
    assert_cors(resp, LOCAL)


def test_any_other_method_is_405(make_client):
    resp = make_client().request("TRACE", URL, headers={"Origin": LOCAL})
    assert resp.status_code == 405
    assert resp.json() == {"error": "Use POST"}
    assert_cors(resp, LOCAL)


def test_unknown_path_keeps_cors(make_client):
    resp = make_client().post("/api/nope", json={"message": "salut"}, headers={"Origin": LOCAL})
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not Found"}
    assert_cors(resp, LOCAL)


@pytest.mark.parametrize("kwargs", [
    {"json": {}},
    {"json": {"message": "   "}},
    {"json": {"message": None}},
    {"content": b"not json"},
    {"content": b""},
    {"json": ["message"]},
])
def test_missing_message_is_bad_request(make_client, sink, kwargs):
    fake = FakeOpenAI()
    resp = make_client(fake).post(URL, headers={"Origin": LOCAL}, **kwargs)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Message required"}
    assert resp.headers["content-type"] == "application/json; charset=utf-8"
    assert_cors(resp, LOCAL)
    assert fake.calls == []
    assert sink.orders == []


def test_json_encoded_string_body(make_client):
    fake = FakeOpenAI("Bonjour")
    body = json.dumps(json.dumps({"message": "salut"}))
    resp = make_client(fake).post(URL, content=body, headers={"Content-Type": "application/json"})
    assert resp.json() == {"reply": "Bonjour"}
    assert fake.calls[0]["messages"][1]["content"] == "salut"


def test_non_string_message_is_coerced(make_client):
    fake = FakeOpenAI("ok")
    make_client(fake).post(URL, json={"message": 42})
    assert fake.calls[0]["messages"][1]["content"] == "42"


def test_order_command_is_stored_without_llm(make_client, sink):
    fake = FakeOpenAI()
    message = "Commande: nom=Ali, tel=0600000000, produit=marbre_noir.jpg, quantite=12"
    resp = make_client(fake).post(URL, json={"message": message}, headers={"Origin": LOCAL})

    assert resp.status_code == 200
    reply = resp.json()["reply"]
    assert "enregistrée" in reply
    assert "12 m²" in reply
    assert_cors(resp, LOCAL)
    assert fake.calls == []
    stored = sink.orders[0]
    assert stored.customer_name == "Ali"
    assert stored.quantity == 12
    assert stored.raw_message == message


def test_order_without_openai_key_still_works(make_client, sink):
    resp = make_client(None).post(URL, json={"message": "commande : tel=0611"})
    assert resp.status_code == 200
    assert len(sink.orders) == 1


def test_incomplete_order_falls_through_to_llm(make_client, sink):
    fake = FakeOpenAI("Merci d'indiquer votre téléphone.")
    resp = make_client(fake).post(URL, json={"message": "Commande: nom=Ali"})
    assert resp.json() == {"reply": "Merci d'indiquer votre téléphone."}
    assert sink.orders == []
    assert len(fake.calls) == 1


def test_persistence_failure_is_generic_500(make_client):
    client = make_client(FakeOpenAI())
    app.dependency_overrides[get_chat_service] = lambda: ChatService(BrokenSink(), None)
    resp = client.post(URL, json={"message": "Commande: tel=0600"}, headers={"Origin": LOCAL})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Erreur lors de l'enregistrement de la commande"}
    assert_cors(resp, LOCAL)


def test_fallback_reply(make_client):
    fake = FakeOpenAI(status_error(503), "secours")
    resp = make_client(fake).post(URL, json={"message": "salut"})
    assert resp.status_code == 200
    assert resp.json() == {"reply": "secours"}


def test_both_models_fail(make_client):
    fake = FakeOpenAI(status_error(500, "internal details"), status_error(500, "internal details"))
    resp = make_client(fake).post(URL, json={"message": "salut"}, headers={"Origin": LOCAL})
    assert resp.status_code == 500
    assert resp.json() == {"error": "LLM upstream error"}
    assert "internal details" not in resp.text
    assert_cors(resp, LOCAL)


def test_timeout_is_distinguishable(make_client):
    resp = make_client(FakeOpenAI(timeout_error())).post(URL, json={"message": "salut"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "LLM timeout"}


def test_empty_reply_is_500(make_client):
    resp = make_client(FakeOpenAI("")).post(URL, json={"message": "salut"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "LLM empty reply"}


def test_missing_openai_key_is_500(make_client):
    resp = make_client(None).post(URL, json={"message": "salut"}, headers={"Origin": LOCAL})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Server misconfigured"}
    assert_cors(resp, LOCAL)


def test_intent_mode_search(make_client):
    fake = FakeOpenAI(json.dumps({"intent": "search", "keywords": "marbre", "limit": 0}))
    resp = make_client(fake, relay_mode="intent").post(URL, json={"message": "du marbre"})
    assert resp.json() == {
        "intent": "search",
        "filters": {"keywords": "marbre", "page": None, "min": None, "max": None, "limit": 1},
    }


def test_intent_mode_parse_error(make_client):
    resp = make_client(FakeOpenAI("pas du json"), relay_mode="intent").post(URL, json={"message": "?"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "LLM JSON parse error"}


def test_unparsed_quantity_is_echoed(make_client, sink):
    resp = make_client().post(URL, json={"message": "Commande: tel=0600, quantite=douze"})
    assert resp.status_code == 200
    assert "📦 Quantité : douze m²" in resp.json()["reply"]
    assert sink.orders[0].quantity is None
