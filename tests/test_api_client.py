"""
Unit tests for the REST client and session handling.
"""
import json
import unittest
from datetime import date

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx

from api.client import CashBookAPIClient
from api.errors import APIError, AuthenticationError
from api.session import Session

BASE_URL = "http://shop.test/api"
SESSION = Session(token="tok-123", user_id="u1", name="Admin")

TRANSACTIONS = [
    {
        '_id': 't1', 'type': 'income', 'amount': 500, 'paymentMethod': 'Cash',
        'description': 'Kaftan', 'date': '2024-01-05T00:00:00.000Z',
        'createdAt': '2024-01-05T10:00:00.000Z',
    },
]
BALANCES = [
    {
        '_id': 'b1', 'cashBalance': 500, 'bankBalance': 0,
        'lastBalancedDate': '2024-01-05T00:00:00.000Z',
        'createdAt': '2024-01-06T08:00:00.000Z',
    },
]


def make_client(handler, retry_count=1):
    transport = httpx.MockTransport(handler)
    http_client = httpx.Client(base_url=BASE_URL, transport=transport)
    return CashBookAPIClient(
        base_url=BASE_URL, timeout=5, retry_count=retry_count, client=http_client
    )


class TestReads(unittest.TestCase):
    """Tests for the list and latest calls."""

    def test_list_transactions(self):
        """Test transactions are fetched with the bearer token and parsed."""
        seen = {}

        def handler(request):
            seen['path'] = request.url.path
            seen['auth'] = request.headers.get('Authorization')
            return httpx.Response(200, json=TRANSACTIONS)

        with make_client(handler) as client:
            transactions = client.list_transactions(SESSION)

        self.assertEqual(seen['path'], '/api/transactions')
        self.assertEqual(seen['auth'], 'Bearer tok-123')
        self.assertEqual(len(transactions), 1)
        self.assertEqual(transactions[0].amount, 500.0)

    def test_list_checkpoints(self):
        """Test balance records are fetched and parsed."""
        def handler(request):
            self.assertEqual(request.url.path, '/api/balances')
            return httpx.Response(200, json=BALANCES)

        checkpoints = make_client(handler).list_checkpoints(SESSION)
        self.assertEqual(checkpoints[0].id, 'b1')
        self.assertEqual(checkpoints[0].last_balanced_date, date(2024, 1, 5))

    def test_latest_checkpoint_when_never_balanced(self):
        """Test the server's empty default maps to None."""
        def handler(request):
            return httpx.Response(
                200, json={'lastBalancedDate': None, 'cashBalance': 0, 'bankBalance': 0}
            )

        self.assertIsNone(make_client(handler).latest_checkpoint(SESSION))

    def test_latest_checkpoint(self):
        """Test a stored latest record is parsed."""
        def handler(request):
            self.assertEqual(request.url.path, '/api/balances/latest')
            return httpx.Response(200, json=BALANCES[0])

        checkpoint = make_client(handler).latest_checkpoint(SESSION)
        self.assertEqual(checkpoint.cash_balance, 500.0)

    def test_unexpected_shape(self):
        """Test a non-list payload is rejected."""
        def handler(request):
            return httpx.Response(200, json={'oops': True})

        with self.assertRaises(APIError):
            make_client(handler).list_transactions(SESSION)

    def test_invalid_json(self):
        """Test an unparseable body is rejected."""
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        with self.assertRaises(APIError):
            make_client(handler).list_checkpoints(SESSION)


class TestErrors(unittest.TestCase):
    """Tests for error mapping and retries."""

    def test_unauthorized(self):
        """Test 401 raises AuthenticationError with the server message."""
        def handler(request):
            return httpx.Response(401, json={'message': 'Not authorized, token failed'})

        with self.assertRaises(AuthenticationError) as ctx:
            make_client(handler).list_transactions(SESSION)
        self.assertEqual(ctx.exception.message, 'Not authorized, token failed')
        self.assertEqual(ctx.exception.status_code, 401)

    def test_server_error_message(self):
        """Test error bodies surface their message."""
        def handler(request):
            return httpx.Response(500, json={'message': 'Server Error'})

        with self.assertRaises(APIError) as ctx:
            make_client(handler).list_checkpoints(SESSION)
        self.assertEqual(ctx.exception.message, 'Server Error')
        self.assertEqual(ctx.exception.status_code, 500)

    def test_get_retried_on_transport_error(self):
        """Test GET requests are retried after a connection failure."""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=TRANSACTIONS)

        transactions = make_client(handler, retry_count=1).list_transactions(SESSION)
        self.assertEqual(len(calls), 2)
        self.assertEqual(len(transactions), 1)

    def test_get_gives_up_after_retries(self):
        """Test persistent transport failures raise APIError."""
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(APIError):
            make_client(handler, retry_count=2).list_transactions(SESSION)
        self.assertEqual(len(calls), 3)

    def test_post_never_retried(self):
        """Test balance creation is attempted exactly once."""
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(APIError):
            make_client(handler, retry_count=3).create_checkpoint(
                SESSION, date(2024, 1, 20), 80.0, 0.0
            )
        self.assertEqual(len(calls), 1)


class TestCreateCheckpoint(unittest.TestCase):
    """Tests for balance record creation."""

    def test_request_body(self):
        """Test the POST path and JSON body."""
        seen = {}

        def handler(request):
            seen['method'] = request.method
            seen['path'] = request.url.path
            seen['body'] = json.loads(request.content)
            return httpx.Response(201, json={
                '_id': 'b2', 'cashBalance': 80, 'bankBalance': 0,
                'lastBalancedDate': '2024-01-20T00:00:00.000Z',
                'createdAt': '2024-01-20T12:00:00.000Z',
            })

        checkpoint = make_client(handler).create_checkpoint(
            SESSION, date(2024, 1, 20), 80.0, 0.0
        )

        self.assertEqual(seen['method'], 'POST')
        self.assertEqual(seen['path'], '/api/balances/setLastBalancedDate')
        self.assertEqual(seen['body'], {
            'date': '2024-01-20', 'cashBalance': 80.0, 'bankBalance': 0.0,
        })
        self.assertEqual(checkpoint.id, 'b2')
        self.assertEqual(checkpoint.last_balanced_date, date(2024, 1, 20))


class TestSession(unittest.TestCase):
    """Tests for Session."""

    def test_from_bearer_header(self):
        """Test parsing an Authorization header."""
        session = Session.from_authorization_header("Bearer abc.def")
        self.assertTrue(session.is_authenticated)
        self.assertEqual(session.auth_headers(), {'Authorization': 'Bearer abc.def'})

    def test_other_schemes_rejected(self):
        """Test non-bearer headers give an anonymous session."""
        self.assertFalse(Session.from_authorization_header("Basic dXNlcg==").is_authenticated)
        self.assertFalse(Session.from_authorization_header(None).is_authenticated)
        self.assertEqual(Session(token="").auth_headers(), {})


if __name__ == '__main__':
    unittest.main()
