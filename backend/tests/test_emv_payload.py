import binascii
from decimal import Decimal

import pytest

from qrpay.services.emv_payload import (
    PaymentDescriptor,
    convert_to_emv_string,
    crc16_ccitt,
    decode_payload,
    format_amount,
    generate_qr_data,
    verify_checksum,
)


def make_descriptor(**overrides):
    fields = dict(
        transaction_id="QR1700000000000ABCD1234",
        amount=Decimal("150.00"),
        description="Order ORD1",
    )
    fields.update(overrides)
    return PaymentDescriptor(**fields)


class TestCRC16:

    def test_known_check_value(self):
        # CRC-16/CCITT-FALSE check value
        assert crc16_ccitt("123456789") == "29B1"

    def test_empty_string_is_initial_value(self):
        assert crc16_ccitt("") == "FFFF"

    def test_zero_padded(self):
        for sample in ["", "A", "6304", "000201010212"]:
            checksum = crc16_ccitt(sample)
            assert len(checksum) == 4
            assert checksum == checksum.upper()

    def test_matches_binascii(self):
        data = "00020101021226490008PH.QR.016304"
        expected = f"{binascii.crc_hqx(data.encode('latin-1'), 0xFFFF):04X}"
        assert crc16_ccitt(data) == expected


class TestGenerateQRData:

    def test_exact_payload(self):
        payload = generate_qr_data(make_descriptor())

        expected_body = (
            "000201"
            "010212"
            "2649" "0008PH.QR.01" "0111MERCHANT001" "0218Your Business Name"
            "52045999"
            "5303608"
            "5406150.00"
            "5802PH"
            "5918Your Business Name"
            "6006Manila"
            "6241" "0123QR1700000000000ABCD1234" "0510Order ORD1"
            "6304"
        )
        assert payload[:-4] == expected_body
        assert payload[-4:] == crc16_ccitt(expected_body)

    def test_deterministic(self):
        assert generate_qr_data(make_descriptor()) == generate_qr_data(make_descriptor())

    def test_checksum_covers_crc_prefix(self):
        payload = generate_qr_data(make_descriptor())
        body = payload[:-4]
        assert body.endswith("6304")
        assert payload[-4:] == f"{binascii.crc_hqx(body.encode('latin-1'), 0xFFFF):04X}"
        assert verify_checksum(payload)

    def test_amount_is_tag_54_with_two_decimals(self):
        payload = generate_qr_data(make_descriptor(amount=Decimal("150")))
        assert "5406150.00" in payload
        assert "15000" not in payload

    def test_round_trip_tag_structure(self):
        descriptor = make_descriptor(merchant_id="M-42", description="Order with a rather long reference")
        fields = decode_payload(generate_qr_data(descriptor))

        assert fields["26"]["01"] == "M-42"
        assert fields["54"] == "150.00"
        assert fields["62"]["01"] == descriptor.transaction_id
        assert fields["62"]["05"] == "Order with a rather long "
        assert len(fields["62"]["05"]) == 25

    def test_long_merchant_name_truncated_to_25(self):
        name = "The Extremely Long Sari-Sari Store Name"
        payload = generate_qr_data(make_descriptor(merchant_name=name))
        fields = decode_payload(payload)

        assert fields["26"]["02"] == name[:25]
        assert fields["59"] == name[:25]
        assert "0225" + name[:25] in payload
        assert "5925" + name[:25] in payload

    def test_unsupported_currency(self):
        with pytest.raises(ValueError):
            generate_qr_data(make_descriptor(currency="USD"))

    def test_value_longer_than_99_rejected(self):
        with pytest.raises(ValueError):
            convert_to_emv_string({"00": "x" * 100})


class TestFormatAmount:

    @pytest.mark.parametrize("amount,expected", [
        (Decimal("150"), "150.00"),
        (150.5, "150.50"),
        ("0.005", "0.01"),
        (Decimal("1E+3"), "1000.00"),
        (1234567, "1234567.00"),
    ])
    def test_format(self, amount, expected):
        assert format_amount(amount) == expected


class TestDecodePayload:

    def test_rejects_bad_checksum(self):
        payload = generate_qr_data(make_descriptor())
        tampered = payload.replace("150.00", "950.00")
        assert not verify_checksum(tampered)
        with pytest.raises(ValueError):
            decode_payload(tampered)

    def test_rejects_truncated_payload(self):
        body = "000201" + "5499150.00"  # declares 99, carries far fewer
        payload = body + "6304" + crc16_ccitt(body + "6304")
        with pytest.raises(ValueError):
            decode_payload(payload)

    def test_keeps_crc_tag(self):
        payload = generate_qr_data(make_descriptor())
        assert decode_payload(payload)["63"] == payload[-4:]
