import pytest

from backend.app.services.registration.validators import (
    clean_rut,
    compute_check_digit,
    format_rut,
    validate_email,
    validate_phone,
    validate_rut,
)


@pytest.mark.parametrize('rut', [
    '12345678-5',
    '12.345.678-5',
    '123456785',
    '11111111-1',
    '12.345.670-K',
    '12345670-k',
    '6-K',
])
def test_validate_rut_accepts_correct_check_digit(rut):
    assert validate_rut(rut) is True


@pytest.mark.parametrize('rut', [
    '12345678-9',
    '11111111-2',
    '12.345.670-1',
    '1234567a-5',
    '12 345 678-5',
    'K',
    '1',
    '',
    '--',
    None,
    12345678,
])
def test_validate_rut_rejects(rut):
    assert validate_rut(rut) is False


def test_compute_check_digit_reference_values():
    # 8*2 + 7*3 + 6*4 + 5*5 + 4*6 + 3*7 + 2*2 + 1*3 = 138, 11 - 138 % 11 = 5
    assert compute_check_digit('12345678') == '5'
    # weights 2,3,4,5,6,7,2,3 sum to 32, 11 - 32 % 11 = 1
    assert compute_check_digit('11111111') == '1'
    assert compute_check_digit('12345670') == 'K'
    assert compute_check_digit('0') == '0'


def test_format_rut_groups_thousands():
    assert format_rut('123456785') == '12.345.678-5'
    assert format_rut('12.345.678-5') == '12.345.678-5'
    assert format_rut('1234567-4') == '1.234.567-4'
    assert format_rut('999-9') == '999-9'


def test_format_rut_keeps_check_character_case():
    assert format_rut('12345670k') == '12.345.670-k'
    assert format_rut('12345670K') == '12.345.670-K'


def test_format_rut_short_input_unchanged():
    assert format_rut('5') == '5'
    assert format_rut('1-') == '1-'
    assert format_rut('') == ''


@pytest.mark.parametrize('rut', ['12345678-5', '11.111.111-1', '12345670k', '7654321-6'])
def test_format_keeps_valid_ruts_valid(rut):
    assert validate_rut(rut)
    formatted = format_rut(clean_rut(rut))
    assert validate_rut(formatted)
    assert format_rut(formatted) == formatted


@pytest.mark.parametrize('phone', [
    '+56912345678',
    '56912345678',
    '912345678',
    '+56 9 1234 5678',
    '(+56) 9-1234-5678',
])
def test_validate_phone_accepts_chilean_mobiles(phone):
    assert validate_phone(phone) is True


@pytest.mark.parametrize('phone', [
    '12345678',
    '+56812345678',
    '91234567',
    '9123456789',
    '+57912345678',
    '+56 9 1234 567a',
    '',
    None,
])
def test_validate_phone_rejects(phone):
    assert validate_phone(phone) is False


def test_validate_email():
    assert validate_email('ana@empresa.cl')
    assert not validate_email('ana@empresa')
    assert not validate_email('ana empresa@x.cl')
    assert not validate_email('')
    assert not validate_email(None)


def test_validate_email_rejects_trailing_newline():
    assert not validate_email('ana@empresa.cl\n')
    assert not validate_email('ana@empresa.cl\nbcc@otro.cl')
