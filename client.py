"""HTTP client for the library API.

Wraps the JSON endpoints the way the management front end uses them: a bearer
token is kept after login and sent with every request, and a 401 response
drops it again.
"""
import requests

DEFAULT_API_BASE = "http://localhost:5000/api"


class ApiError(Exception):
    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        self.status = status


class LibraryClient:
    def __init__(self, base_url=DEFAULT_API_BASE, token=None, session=None, timeout=10):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.user = None
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method, path, **kwargs):
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        response = self.session.request(
            method,
            f"{self.base_url}{path}",
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )

        if not response.ok:
            message = response.reason or "Request failed"
            try:
                message = response.json().get("message", message)
            except ValueError:
                if response.text:
                    message = response.text

            if response.status_code == 401:
                self.token = None
                self.user = None

            raise ApiError(message, response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    # Auth
    def login(self, email, password):
        data = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        self.user = data["user"]
        return data

    def logout(self):
        try:
            return self._request("POST", "/auth/logout")
        finally:
            self.token = None
            self.user = None

    def me(self):
        return self._request("GET", "/auth/me")["user"]

    # Books
    def list_books(self, category=None, title=None, author=None):
        params = {}
        if category and category != "all":
            params["category"] = category
        if title:
            params["title"] = title
        if author:
            params["author"] = author
        return self._request("GET", "/books", params=params)

    def get_book(self, book_id):
        return self._request("GET", f"/books/{book_id}")

    def create_book(self, payload):
        return self._request("POST", "/books", json=payload)

    def update_book(self, book_id, payload):
        return self._request("PUT", f"/books/{book_id}", json=payload)

    def delete_book(self, book_id):
        return self._request("DELETE", f"/books/{book_id}")

    def list_categories(self):
        return self._request("GET", "/categories")

    # Members
    def list_members(self):
        return self._request("GET", "/users")

    def create_member(self, name, age):
        return self._request("POST", "/users", json={"name": name, "age": age})

    def update_member(self, member_id, name, age):
        return self._request("PUT", f"/users/{member_id}", json={"name": name, "age": age})

    def delete_member(self, member_id):
        return self._request("DELETE", f"/users/{member_id}")

    # Transactions
    def list_transactions(self):
        return self._request("GET", "/transactions")

    def borrow(self, book_id, member_id):
        return self._request(
            "POST", "/transactions/borrow", json={"book_id": book_id, "user_id": member_id}
        )

    def return_book(self, book_id, member_id):
        return self._request(
            "POST", "/transactions/return", json={"book_id": book_id, "user_id": member_id}
        )

    def active_borrowers(self, book_id):
        """Members who may return `book_id` right now."""
        return self._request("GET", f"/books/{book_id}/borrowers")
