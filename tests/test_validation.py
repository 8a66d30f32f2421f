from __future__ import annotations

from useradmin.validation import Confirmed, Email, FieldRules, Max, Required, Unique, validate


def test_required_reports_missing_and_blank_values() -> None:
    rules = {"name": FieldRules([Required(), Max(5)])}

    assert validate(rules, {}) == {"name": ["The name field is required."]}
    assert validate(rules, {"name": "   "}) == {"name": ["The name field is required."]}
    assert validate(rules, {"name": "Ada"}) == {}


def test_non_implicit_rules_skip_empty_values() -> None:
    rules = {"email": FieldRules([Email(), Max(3)])}

    assert validate(rules, {"email": ""}) == {}


def test_sometimes_skips_fields_that_were_not_supplied() -> None:
    rules = {"name": FieldRules([Required()], sometimes=True)}

    assert validate(rules, {}) == {}
    assert validate(rules, {"name": ""}) == {"name": ["The name field is required."]}


def test_supplied_callback_overrides_key_membership() -> None:
    rules = {"name": FieldRules([Required()], sometimes=True)}

    errors = validate(rules, {"name": None}, supplied=lambda field: False)
    assert errors == {}


def test_email_and_max_messages_accumulate() -> None:
    rules = {"email": FieldRules([Email(), Max(10)])}

    errors = validate(rules, {"email": "definitely-not-an-email"})
    assert errors == {
        "email": [
            "The email must be a valid email address.",
            "The email must not be greater than 10 characters.",
        ]
    }


def test_confirmed_compares_against_confirmation_field() -> None:
    rules = {"password": FieldRules([Confirmed()])}

    assert validate(rules, {"password": "secret", "password_confirmation": "secret"}) == {}
    assert validate(rules, {"password": "secret", "password_confirmation": "other"}) == {
        "password": ["The password confirmation does not match."]
    }
    assert validate(rules, {"password": "secret"}) == {
        "password": ["The password confirmation does not match."]
    }


def test_unique_passes_ignore_id_to_lookup() -> None:
    calls = []

    def exists(value: str, ignore_id):
        calls.append((value, ignore_id))
        return ignore_id is None

    rules = {"email": FieldRules([Unique(exists)])}
    assert validate(rules, {"email": "a@example.com"}) == {
        "email": ["The email has already been taken."]
    }

    rules = {"email": FieldRules([Unique(exists, ignore_id=7)])}
    assert validate(rules, {"email": "a@example.com"}) == {}
    assert calls == [("a@example.com", None), ("a@example.com", 7)]


def test_every_failing_field_is_reported() -> None:
    rules = {
        "email": FieldRules([Required()]),
        "name": FieldRules([Required()]),
        "password": FieldRules([Required()]),
    }

    assert set(validate(rules, {})) == {"email", "name", "password"}


def test_email_accepts_local_and_special_use_domains() -> None:
    rules = {"email": FieldRules([Email()])}

    assert validate(rules, {"email": "user@localhost"}) == {}
    assert validate(rules, {"email": "user@host.test"}) == {}
    assert validate(rules, {"email": "user@"}) == {"email": ["The email must be a valid email address."]}
