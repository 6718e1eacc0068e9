"""
Input validation for dictionary entries
"""
import re
from typing import Optional

from keytao.core.exceptions import InvalidCodeError, ValidationError

# Letters, optionally led by one semicolon, or one/two bare semicolons
CODE_PATTERN = re.compile(r'^;{1,2}$|^;?[a-zA-Z]+$')
MAX_CODE_LENGTH = 6
MAX_WORD_LENGTH = 255


def code_error(code: Optional[str]) -> Optional[str]:
    """
    Describe why a code is invalid.

    Returns:
        None for a valid code, otherwise a short reason
    """
    if not code:
        return "code must not be empty"
    if len(code) > MAX_CODE_LENGTH:
        return f"code longer than {MAX_CODE_LENGTH} characters"
    if not CODE_PATTERN.match(code):
        return "code may only contain letters, optionally prefixed by ';'"
    return None


def is_valid_code(code: Optional[str]) -> bool:
    return code_error(code) is None


def validate_code(code: Optional[str]) -> str:
    """
    Validate a phrase code.

    Raises:
        InvalidCodeError: If the code is empty, too long, or malformed
    """
    reason = code_error(code)
    if reason:
        raise InvalidCodeError(code or "", reason)
    return code


def validate_word(word: Optional[str], field: str = "word") -> str:
    """
    Validate and trim a dictionary word.

    Raises:
        ValidationError: If the word is blank, too long, or contains tabs/newlines
    """
    if word is None or not word.strip():
        raise ValidationError(f"{field} must not be empty", details={"field": field})
    word = word.strip()
    if len(word) > MAX_WORD_LENGTH:
        raise ValidationError(f"{field} too long (max {MAX_WORD_LENGTH} characters)", details={"field": field})
    if any(ch in word for ch in "\t\r\n"):
        raise ValidationError(f"{field} must not contain tabs or line breaks", details={"field": field})
    return word
