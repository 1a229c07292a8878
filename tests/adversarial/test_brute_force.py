"""
Adversarial tests for password brute-force prevention.

Verifies that repeated wrong passwords against one donor lock password
login for that donor:
- The fifth failure within thirty minutes locks the account
- A locked account refuses even the correct password
- The refusal is indistinguishable from a wrong password
- Concurrent guesses are all counted

Security rationale:
- Donor passwords only need eight characters with a letter and a digit,
  so unthrottled guessing is practical
- The identity token is derived from guessable personal data, so the
  attacker already holds the other half of the credential
- Answering a locked account with a distinct status would itself reveal
  that the donor exists
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from donorauth.adapters.repository.memory import InMemoryDonorStore
from donorauth.domain.auth import AuthService
from donorauth.domain.exceptions import AccountLocked, AuthError, InvalidCredentials
from donorauth.domain.identity import DonorAttributes
from donorauth.domain.throttle import DEFAULT_WINDOW, LoginThrottle

# Apply adversarial marker to all tests in this module
pytestmark = pytest.mark.adversarial

PASSWORD = "Valid123"
ACTIVE = {"email_verified": True, "account_activated": True}

MARIA = DonorAttributes("Maria", "Rossi", "1990-05-01", "A1B2C")
LUCA = DonorAttributes("Luca", "Bianchi", "1985-11-20", "Z9Y8X")


def comparable(response) -> tuple:
    headers = {k: v for k, v in response.headers.items() if k.lower() != "date"}
    return response.status_code, response.content, headers


def login(client: TestClient, token: str, password: str):
    return client.post("/v1/login/password", json={"identity_token": token, "password": password})


class TestBruteForceLockout:
    """Guessing passwords over HTTP locks the targeted donor."""

    def test_correct_password_refused_after_five_failures(
        self, client: TestClient, store: InMemoryDonorStore, seed
    ) -> None:
        token = seed(store, MARIA, "m@x.it", password=PASSWORD, **ACTIVE)
        wrong = [login(client, token, f"Guess{i}xyz") for i in range(5)]

        locked = login(client, token, PASSWORD)

        assert all(r.status_code == 401 for r in wrong)
        assert comparable(locked) == comparable(wrong[-1])
        assert "set-cookie" not in locked.headers

    def test_lock_lifts_after_window(
        self, client: TestClient, store: InMemoryDonorStore, seed, clock
    ) -> None:
        token = seed(store, MARIA, "m@x.it", password=PASSWORD, **ACTIVE)
        for i in range(5):
            login(client, token, f"Guess{i}xyz")

        clock.advance(minutes=31)
        response = login(client, token, PASSWORD)

        assert response.status_code == 200
        assert "set-cookie" in response.headers

    def test_other_donors_unaffected(
        self, client: TestClient, store: InMemoryDonorStore, seed
    ) -> None:
        target = seed(store, MARIA, "m@x.it", password=PASSWORD, **ACTIVE)
        bystander = seed(store, LUCA, "l@x.it", password=PASSWORD, **ACTIVE)
        for i in range(5):
            login(client, target, f"Guess{i}xyz")

        assert login(client, bystander, PASSWORD).status_code == 200


class TestConcurrentGuessing:
    """
    An attacker fires guesses in parallel hoping some escape the count.
    """

    def test_parallel_failures_all_counted(self, store: InMemoryDonorStore, seed, clock) -> None:
        token = seed(store, MARIA, "m@x.it", password=PASSWORD, **ACTIVE)
        service = AuthService(store=store, clock=clock, throttle=LoginThrottle(store, clock=clock))
        num_attackers = 10
        barrier = threading.Barrier(num_attackers)

        def attempt(i: int) -> object:
            barrier.wait()
            try:
                return service.authenticate_by_password(token, f"Guess{i}xyz")
            except AuthError as e:
                return e

        with ThreadPoolExecutor(max_workers=num_attackers) as executor:
            results = list(executor.map(attempt, range(num_attackers)))

        assert all(isinstance(r, (InvalidCredentials, AccountLocked)) for r in results)
        assert store.count_failed_logins(token, clock() - DEFAULT_WINDOW) >= 5
        with pytest.raises(AccountLocked):
            service.authenticate_by_password(token, PASSWORD)
