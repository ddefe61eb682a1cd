import pytest

from shared.pydantic_models import ContactInfo
from shared.utils import decode_contact_info, encode_contact_info


@pytest.mark.parametrize('raw', [
    None,
    '',
    'not json',
    '[1, 2, 3]',
    42,
    ['phone'],
    b'\xff\xfe',
    {'preferred_method': 'carrier pigeon'},
    {'notes': 'x' * 5000},
])
def test_bad_payloads_decode_to_empty(raw):
    assert decode_contact_info(raw).is_empty()


def test_dict_and_json_payloads():
    expected = ContactInfo(phone='+31 6 1234 5678', preferred_method='phone')

    assert decode_contact_info({'phone': ' +31 6 1234 5678 ', 'preferred_method': 'phone'}) == expected
    assert decode_contact_info('{"phone": "+31 6 1234 5678", "preferred_method": "phone"}') == expected
    assert decode_contact_info(b'{"phone": "+31 6 1234 5678", "preferred_method": "phone"}') == expected
    assert decode_contact_info(expected) is expected


def test_unknown_keys_are_dropped():
    assert encode_contact_info({'email': 'me@example.com', 'favourite_dance': 'bachata'}) == {
        'email': 'me@example.com',
    }
