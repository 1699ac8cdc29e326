import pytest

from portal.services.phone import normalize_phone


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0712345678", "254712345678"),
        ("254712345678", "254712345678"),
        ("+254712345678", "254712345678"),
        ("0712 345 678", "254712345678"),
        ("(0712)-345-678", "254712345678"),
        ("+254 712-345-678", "254712345678"),
        (712345678, None),
        (254712345678, "254712345678"),
    ],
)
def test_normalize_phone_accepts_local_and_international_forms(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["12345", "", None, "07123456789", "0712345abc", "++254712345678", "٠٧١٢٣٤٥٦٧٨"],
)
def test_normalize_phone_rejects_everything_else(raw):
    assert normalize_phone(raw) is None
