from __future__ import annotations

import pytest

from lifeline.infrastructure.security.otp import generate_otp, is_valid_otp_format, mask_phone


def test_generated_codes_are_six_digits_in_range() -> None:
    for _ in range(200):
        otp = generate_otp()
        assert is_valid_otp_format(otp)
        assert 100000 <= int(otp) <= 999999


@pytest.mark.parametrize(
    "value",
    ["12345", "1234567", "12345a", " 123456", "123456\n", "\u0661\u0662\u0663\u0664\u0665\u0666", "", None, 123456],
)
def test_format_check_rejects_anything_but_six_digits(value) -> None:
    assert is_valid_otp_format(value) is False


def test_mask_phone_keeps_prefix_only() -> None:
    assert mask_phone("+919876543210") == "+919****"
    assert mask_phone(None) is None
