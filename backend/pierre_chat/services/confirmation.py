from typing import Optional

from pierre_chat.models.order import OrderRecord


def _or(value: Optional[object], placeholder: str = "(non fourni)") -> str:
    if value is None or value == "":
        return placeholder
    return str(value)


def format_quantity(record: OrderRecord) -> str:
    q = record.quantity
    if q is not None:
        text = str(int(q)) if float(q).is_integer() else str(q)
    else:
        text = _or(record.quantity_text, "(non fournie)")
    return f"{text} {record.unit}"


def order_confirmation(record: OrderRecord) -> str:
    """French confirmation echoed back to the customer after the order is stored."""
    lines = [
        "🧾 Votre commande a été enregistrée avec succès !",
        "",
        f"👤 Nom : {_or(record.customer_name)}",
        f"📞 Téléphone : {_or(record.phone)}",
        f"🪨 Produit : {_or(record.product_filename)}",
        f"📦 Quantité : {format_quantity(record)}",
    ]
    if record.note:
        lines.append(f"📝 Note : {record.note}")
    lines += ["", "Nous vous contacterons très prochainement."]
    return "\n".join(lines)
