"""
Tests for error message extraction and the ApiError taxonomy.

Run with: pytest tests/test_errors.py -v
"""

import httpx
import pytest

from barbershop.core.errors import (
    ApiError,
    ErrorCodes,
    PreconditionError,
    extract_error_message,
    flatten_validation_errors,
    user_message,
)


class TestExtractErrorMessage:
    """Server message first, then validation errors, then fallbacks."""

    def test_message_field_wins(self):
        payload = {
            "message": "El barbero no está disponible",
            "errors": {"StartTime": ["Hora ocupada"]},
            "title": "Bad Request",
        }
        assert extract_error_message(payload, 400, "Error al crear la cita") == "El barbero no está disponible"

    def test_validation_errors_first_field_first_message(self):
        payload = {
            "title": "One or more validation errors occurred.",
            "errors": {"BarberId": ["Barbero requerido", "Otro"], "Notes": ["Muy largo"]},
        }
        assert extract_error_message(payload, 400) == "Barbero requerido"

    def test_title_when_no_message_or_errors(self):
        assert extract_error_message({"title": "Conflict"}, 409) == "Conflict"

    def test_short_text_body(self):
        assert extract_error_message("Horario no disponible", 400) == "Horario no disponible"

    def test_long_text_body_falls_back(self):
        assert extract_error_message("<html>" + "x" * 400, 502, "Error del servidor") == "Error del servidor"

    def test_status_code_when_nothing_else(self):
        assert extract_error_message({}, 500) == "Request failed with status code 500"

    def test_no_status_at_all(self):
        assert extract_error_message(None) == "Request failed"


class TestFlattenValidationErrors:
    def test_dict_of_lists(self):
        assert flatten_validation_errors({"Email": ["Email inválido"]}) == "Email inválido"

    def test_list_of_dicts(self):
        assert flatten_validation_errors([{"msg": "campo requerido"}]) == "campo requerido"

    def test_nothing_usable(self):
        assert flatten_validation_errors({"Email": []}) is None
        assert flatten_validation_errors("texto") is None


class TestApiError:
    def test_from_json_response(self):
        response = httpx.Response(
            400,
            json={"title": "Bad Request", "errors": {"HairCutId": ["Servicio inválido"]}},
        )
        error = ApiError.from_response(response)

        assert error.status_code == 400
        assert error.message == "Servicio inválido"
        assert error.details == {"HairCutId": ["Servicio inválido"]}

    def test_from_text_response(self):
        error = ApiError.from_response(httpx.Response(500, text="Internal error"))
        assert error.message == "Internal error"
        assert error.details is None

    def test_status_helpers(self):
        assert ApiError("x", status_code=401).is_unauthorized
        assert ApiError("x", status_code=404).is_not_found
        assert not ApiError("x").is_unauthorized


def test_precondition_error_default_code():
    error = PreconditionError("Fecha inválida")
    assert error.code == ErrorCodes.INVALID_INPUT
    assert str(error) == "Fecha inválida"


@pytest.mark.parametrize(
    "error, expected",
    [
        (ApiError("Horario ocupado", status_code=409), "Horario ocupado"),
        (ApiError(""), "Error al guardar"),
        (RuntimeError("boom"), "Error al guardar"),
    ],
)
def test_user_message(error, expected):
    assert user_message(error, "Error al guardar") == expected
