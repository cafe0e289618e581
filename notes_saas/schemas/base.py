"""
schemas/base.py
---------------
Shared pydantic configuration.

The JSON API speaks camelCase (tenantName, refreshToken, noteLimit);
Python code uses snake_case. Every schema inherits the alias mapping and
accepts either spelling on input.
"""

import re
from typing import Annotated

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
PASSWORD_RULE = "Password must be at least 6 characters with uppercase, lowercase, and number"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def check_password_strength(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(PASSWORD_RULE)
    return value


def normalize_email(value: str) -> str:
    """
    Syntax-check an address and return it lowercased.

    Reserved names such as `.test` are accepted (the demo tenants live
    there); deliverability is never checked.
    """
    try:
        result = validate_email(
            value.strip(), check_deliverability=False, test_environment=True
        )
    except EmailNotValidError as exc:
        raise ValueError(str(exc)) from exc
    return result.normalized.lower()


EmailAddress = Annotated[str, AfterValidator(normalize_email)]
