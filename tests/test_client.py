from unittest.mock import MagicMock

import pytest

from client import ApiError, LibraryClient


def fake_response(status=200, body=None, reason="OK", text=None):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 400
    response.reason = reason
    response.content = b"" if body is None and text is None else b"x"
    response.text = text or ""
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def api(session):
    return LibraryClient("http://library.test/api/", session=session)


def sent(session):
    args, kwargs = session.request.call_args
    return args[0], args[1], kwargs


def test_login_stores_token_and_sends_it(api, session):
    session.request.return_value = fake_response(
        body={"token": "abc", "user": {"id": 1, "name": "Library Manager"}}
    )
    api.login("manager@library.com", "manager123")
    assert api.token == "abc"

    session.request.return_value = fake_response(body=[])
    api.list_transactions()
    method, url, kwargs = sent(session)
    assert (method, url) == ("GET", "http://library.test/api/transactions")
    assert kwargs["headers"]["Authorization"] == "Bearer abc"


def test_borrow_posts_ids(api, session):
    session.request.return_value = fake_response(
        status=201, body={"transaction": {"type": "issue"}, "book": {"stock": 1}}
    )
    result = api.borrow(3, 7)

    method, url, kwargs = sent(session)
    assert method == "POST"
    assert url.endswith("/transactions/borrow")
    assert kwargs["json"] == {"book_id": 3, "user_id": 7}
    assert result["book"]["stock"] == 1


def test_error_message_comes_from_body(api, session):
    session.request.return_value = fake_response(
        status=422, reason="Unprocessable Entity", body={"message": "Book out of stock"}
    )
    with pytest.raises(ApiError) as exc:
        api.borrow(3, 7)
    assert exc.value.message == "Book out of stock"
    assert exc.value.status == 422


def test_unauthorized_clears_token(session):
    api = LibraryClient("http://library.test/api", token="stale", session=session)
    session.request.return_value = fake_response(
        status=401, reason="Unauthorized", body={"message": "Invalid token"}
    )
    with pytest.raises(ApiError):
        api.me()
    assert api.token is None


def test_list_books_builds_filters(api, session):
    session.request.return_value = fake_response(body=[])
    api.list_books(category="all", title="dune")
    _, _, kwargs = sent(session)
    assert kwargs["params"] == {"title": "dune"}


def test_delete_returns_none_on_empty_body(api, session):
    session.request.return_value = fake_response(status=204, reason="No Content")
    assert api.delete_member(5) is None


def test_logout_forgets_token_even_on_error(session):
    api = LibraryClient("http://library.test/api", token="abc", session=session)
    session.request.return_value = fake_response(status=500, reason="Server Error", text="boom")
    with pytest.raises(ApiError) as exc:
        api.logout()
    assert exc.value.message == "boom"
    assert api.token is None
