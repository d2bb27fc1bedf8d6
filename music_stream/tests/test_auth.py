import unittest
from unittest.mock import MagicMock

import requests

from music_stream.auth import (
    AuthError,
    AuthHeaderError,
    HttpTokenValidator,
    InMemoryTokenValidator,
    parse_bearer_token,
)


class ParseBearerTokenTests(unittest.TestCase):
    def test_extracts_token(self):
        self.assertEqual(parse_bearer_token("Bearer abc.def"), "abc.def")

    def test_missing_header(self):
        for header in (None, ""):
            with self.assertRaises(AuthHeaderError) as ctx:
                parse_bearer_token(header)
            self.assertEqual(str(ctx.exception), "no authorization header found")

    def test_malformed_headers(self):
        for header in ("Basic abc", "Bearer", "Bearer a b", "bearer abc", "Bearer "):
            with self.assertRaises(AuthHeaderError, msg=header):
                parse_bearer_token(header)


class HttpTokenValidatorTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock(spec=requests.Session)

    def test_empty_login_url_fails_without_request(self):
        validator = HttpTokenValidator(login_url="", session=self.session)
        with self.assertRaises(AuthError) as ctx:
            validator.validate_token("token")
        self.assertEqual(str(ctx.exception), "login service url cannot be empty")
        self.session.post.assert_not_called()

    def test_transport_error_fails(self):
        self.session.post.side_effect = requests.ConnectionError("connection refused")
        validator = HttpTokenValidator(login_url="login:8000", session=self.session)
        with self.assertRaises(AuthError) as ctx:
            validator.validate_token("token")
        self.assertEqual(str(ctx.exception), "connection refused")

    def test_non_200_status_is_embedded_in_error(self):
        self.session.post.return_value = MagicMock(status_code=418)
        validator = HttpTokenValidator(login_url="login:8000", session=self.session)
        with self.assertRaises(AuthError) as ctx:
            validator.validate_token("token")
        self.assertEqual(str(ctx.exception), "non-200 status code received: 418")

    def test_other_2xx_is_still_rejected(self):
        self.session.post.return_value = MagicMock(status_code=204)
        validator = HttpTokenValidator(login_url="login:8000", session=self.session)
        with self.assertRaises(AuthError):
            validator.validate_token("token")

    def test_200_accepts_and_forwards_token(self):
        self.session.post.return_value = MagicMock(status_code=200)
        validator = HttpTokenValidator(login_url="login:8000", session=self.session)

        validator.validate_token("abc")

        self.session.post.assert_called_once_with(
            "http://login:8000/token", headers={"Authorization": "Bearer abc"}
        )


class InMemoryTokenValidatorTests(unittest.TestCase):
    def test_accepts_everything_without_token_set(self):
        InMemoryTokenValidator().validate_token("anything")

    def test_rejects_unknown_token(self):
        validator = InMemoryTokenValidator(tokens={"good"})
        validator.validate_token("good")
        with self.assertRaises(AuthError):
            validator.validate_token("bad")


if __name__ == "__main__":
    unittest.main()
