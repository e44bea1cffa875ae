"""
Conversion between WhatsApp chat ids and local mobile numbers.

A chat id looks like ``989121234567@c.us``: the international number followed
by the provider suffix. The local form swaps the leading country code for the
trunk prefix, giving ``09121234567``.
"""

import logging

logger = logging.getLogger(__name__)


def normalize_chat_id(
    chat_id: str,
    suffix: str = "@c.us",
    country_code: str = "98",
    trunk_prefix: str = "0"
) -> str:
    """
    Derive the local mobile number for a chat id.
    
    Only the trailing suffix and the leading country code are rewritten, so
    distinct well-formed ids always map to distinct numbers. Ids that lack
    either part (group chats, foreign numbers) are returned unchanged.
    
    Args:
        chat_id: Provider chat identifier
        suffix: Provider suffix to strip
        country_code: International prefix to replace
        trunk_prefix: Local prefix that replaces it
    
    Returns:
        The local mobile number, or the chat id itself when malformed
    """
    if not chat_id.endswith(suffix):
        logger.debug(f"Chat id {chat_id} has no {suffix} suffix, leaving as is")
        return chat_id
    
    number = chat_id[:-len(suffix)] if suffix else chat_id
    if not number.startswith(country_code) or len(number) == len(country_code):
        logger.debug(f"Chat id {chat_id} is not a {country_code} number, leaving as is")
        return chat_id
    
    return trunk_prefix + number[len(country_code):]


def chat_id_for_mobile(
    mobile: str,
    suffix: str = "@c.us",
    country_code: str = "98",
    trunk_prefix: str = "0"
) -> str:
    """
    Build the chat id for a local mobile number.
    
    Numbers already in international form (with or without ``+``) only get
    the suffix appended.
    """
    number = mobile.strip().lstrip("+")
    if trunk_prefix and number.startswith(trunk_prefix):
        number = country_code + number[len(trunk_prefix):]
    return number + suffix
