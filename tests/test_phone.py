"""
Tests for chat id / mobile number conversion.
"""

import pytest

from app.utils.phone import chat_id_for_mobile, normalize_chat_id


class TestNormalizeChatId:
    
    def test_strips_suffix_and_swaps_country_code(self):
        assert normalize_chat_id("989121234567@c.us") == "09121234567"
    
    def test_only_leading_country_code_is_replaced(self):
        assert normalize_chat_id("989129898989@c.us") == "09129898989"
    
    @pytest.mark.parametrize("chat_id", [
        "120363025246125486@g.us",
        "449121234567@c.us",
        "98@c.us",
        "989121234567",
    ])
    def test_malformed_ids_pass_through(self, chat_id):
        assert normalize_chat_id(chat_id) == chat_id
    
    def test_custom_prefixes(self):
        assert normalize_chat_id(
            "4915112345678@s.whatsapp.net",
            suffix="@s.whatsapp.net",
            country_code="49",
            trunk_prefix="0",
        ) == "015112345678"


class TestChatIdForMobile:
    
    def test_local_number(self):
        assert chat_id_for_mobile("09121234567") == "989121234567@c.us"
    
    def test_international_number(self):
        assert chat_id_for_mobile("+989121234567") == "989121234567@c.us"
    
    def test_inverse_of_normalize(self):
        chat_id = "989121234567@c.us"
        assert chat_id_for_mobile(normalize_chat_id(chat_id)) == chat_id
