"""
EMV QR Payload Encoder

Serializes a payment descriptor into a QRPH (EMV merchant-presented QR)
tag-length-value string terminated by a CRC-16/CCITT checksum tag.

Format:
- Each field is tag (2 chars) + length (2 digits, zero-padded) + value
- Length counts characters, not bytes
- Template tags (26-51, 62, 64) carry nested TLV fields as their value
- The payload ends with "6304" + 4 uppercase hex digits of CRC-16/CCITT
  computed over everything before it, "6304" included

The same encoder serves the transaction creator and the QR image renderer,
so there is a single implementation with no HTTP or UI dependencies.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Union


# ============================================================================
# Constants
# ============================================================================

PAYLOAD_FORMAT_INDICATOR = "01"
POINT_OF_INITIATION_DYNAMIC = "12"
QRPH_GUID = "PH.QR.01"

CRC_TAG_PREFIX = "6304"
CRC_POLYNOMIAL = 0x1021
CRC_INITIAL = 0xFFFF

MAX_NAME_LENGTH = 25
MAX_REFERENCE_LENGTH = 25
MAX_VALUE_LENGTH = 99

# ISO 4217 alphabetic -> numeric
CURRENCY_NUMERIC_CODES: Dict[str, str] = {
    "PHP": "608",
}

TEMPLATE_TAGS = {f"{tag:02d}" for tag in range(26, 52)} | {"62", "64"}

TLVValue = Union[str, Dict[str, str]]


@dataclass(frozen=True)
class PaymentDescriptor:
    """Everything the encoder needs to build one payload."""
    transaction_id: str
    amount: Decimal
    description: str
    currency: str = "PHP"
    merchant_id: str = "MERCHANT001"
    merchant_name: str = "Your Business Name"
    merchant_city: str = "Manila"
    country_code: str = "PH"
    merchant_category_code: str = "5999"


# ============================================================================
# Checksum
# ============================================================================

def crc16_ccitt(data: str) -> str:
    """
    CRC-16/CCITT-FALSE over the low byte of each character.

    Args:
        data: String to checksum

    Returns:
        4 uppercase hex digits, zero-padded
    """
    crc = CRC_INITIAL
    for char in data:
        crc ^= (ord(char) & 0xFF) << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ CRC_POLYNOMIAL) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


# ============================================================================
# Encoding
# ============================================================================

def format_amount(amount: Union[Decimal, float, int, str]) -> str:
    """Render an amount with exactly two decimals, no exponent, no grouping."""
    quantized = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{quantized:f}"


def _tlv(tag: str, value: str) -> str:
    if len(value) > MAX_VALUE_LENGTH:
        raise ValueError(f"Value for tag {tag} is {len(value)} characters; max is {MAX_VALUE_LENGTH}")
    return f"{tag}{len(value):02d}{value}"


def serialize_tlv(fields: Dict[str, TLVValue]) -> str:
    """
    Serialize an ordered tag map without the checksum.

    Nested dicts are serialized first and wrapped in their parent tag.
    """
    parts = []
    for tag, value in fields.items():
        if isinstance(value, dict):
            nested = "".join(_tlv(sub_tag, sub_value) for sub_tag, sub_value in value.items())
            parts.append(_tlv(tag, nested))
        else:
            parts.append(_tlv(tag, value))
    return "".join(parts)


def convert_to_emv_string(fields: Dict[str, TLVValue]) -> str:
    """Serialize a tag map and append the CRC tag."""
    body = serialize_tlv(fields)
    return body + CRC_TAG_PREFIX + crc16_ccitt(body + CRC_TAG_PREFIX)


def build_qrph_fields(descriptor: PaymentDescriptor) -> Dict[str, TLVValue]:
    """
    Build the ordered QRPH tag map for a descriptor.

    Raises:
        ValueError: Currency has no numeric code
    """
    try:
        currency_code = CURRENCY_NUMERIC_CODES[descriptor.currency.upper()]
    except KeyError:
        raise ValueError(f"Unsupported currency: {descriptor.currency}") from None

    merchant_name = descriptor.merchant_name[:MAX_NAME_LENGTH]

    return {
        "00": PAYLOAD_FORMAT_INDICATOR,
        "01": POINT_OF_INITIATION_DYNAMIC,
        "26": {
            "00": QRPH_GUID,
            "01": descriptor.merchant_id,
            "02": merchant_name,
        },
        "52": descriptor.merchant_category_code,
        "53": currency_code,
        "54": format_amount(descriptor.amount),
        "58": descriptor.country_code,
        "59": merchant_name,
        "60": descriptor.merchant_city,
        "62": {
            "01": descriptor.transaction_id,  # Bill Number
            "05": descriptor.description[:MAX_REFERENCE_LENGTH],  # Reference Label
        },
    }


def generate_qr_data(descriptor: PaymentDescriptor) -> str:
    """
    Encode a descriptor into a scannable QRPH payload string.

    Deterministic: identical descriptors always give identical payloads.
    Amount positivity is not checked here.
    """
    return convert_to_emv_string(build_qrph_fields(descriptor))


# ============================================================================
# Decoding
# ============================================================================

def _parse_tlv(data: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    position = 0
    while position < len(data):
        header = data[position:position + 4]
        if len(header) < 4 or not header[2:].isdigit():
            raise ValueError(f"Malformed TLV header at offset {position}: {header!r}")
        tag, length = header[:2], int(header[2:])
        value = data[position + 4:position + 4 + length]
        if len(value) != length:
            raise ValueError(f"Tag {tag} declares length {length} but only {len(value)} characters remain")
        fields[tag] = value
        position += 4 + length
    return fields


def verify_checksum(payload: str) -> bool:
    """True if the payload ends with a CRC tag matching the preceding content."""
    if len(payload) < 8 or payload[-8:-4] != CRC_TAG_PREFIX:
        return False
    return crc16_ccitt(payload[:-4]) == payload[-4:].upper()


def decode_payload(payload: str) -> Dict[str, TLVValue]:
    """
    Parse a payload back into its tag map.

    Template tags are returned as nested dicts. The CRC tag ("63") is kept.

    Raises:
        ValueError: Malformed TLV structure or checksum mismatch
    """
    if not verify_checksum(payload):
        raise ValueError("Payload checksum mismatch")

    fields: Dict[str, TLVValue] = {}
    for tag, value in _parse_tlv(payload).items():
        fields[tag] = _parse_tlv(value) if tag in TEMPLATE_TAGS else value
    return fields
