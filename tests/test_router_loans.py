import pytest
from httpx import AsyncClient


async def _create_game(client: AsyncClient, headers, title: str = "Go") -> int:
    response = await client.post(
        "/boardgames", json={"title": title, "designer": "X", "genre": "Abstract"}, headers=headers
    )
    assert response.status_code == 201
    return response.json()["id"]


async def _borrow(client: AsyncClient, headers, item_id, item_type="BoardGame", borrower="Bob"):
    return await client.post(
        "/loans/borrow",
        json={"itemId": item_id, "itemType": item_type, "borrowerName": borrower, "dueDate": "2025-01-01"},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_lending_scenario(client: AsyncClient):
    """
    登録から貸出・返却までの一連の流れを確認します。
    """
    response = await client.post("/auth/register", json={"username": "alice", "password": "secret1"})
    assert response.json()["user"]["role"] == "admin"
    token = (await client.post("/auth/login", json={"username": "alice", "password": "secret1"})).json()["token"]
    headers = {"Authorization": f"Bearer {token}"}

    game_id = await _create_game(client, headers)

    response = await _borrow(client, headers, game_id)
    assert response.status_code == 201, f"貸出に失敗しました: {response.text}"
    loan = response.json()
    assert loan["itemId"] == game_id
    assert loan["itemType"] == "BoardGame"
    assert loan["borrowerName"] == "Bob"
    assert loan["dueDate"].startswith("2025-01-01")
    assert loan["returnDate"] is None
    assert loan["loanDate"] is not None
    assert loan["returnedByUserId"] is None

    response = await _borrow(client, headers, game_id, borrower="Carol")
    assert response.status_code == 400
    assert response.json() == {"message": f"BoardGame with ID {game_id} is already on loan."}

    response = await client.post("/loans/return", json={"loanId": loan["id"]}, headers=headers)
    assert response.status_code == 200
    returned = response.json()
    assert returned["returnDate"] is not None
    assert returned["returnedByUserId"] == loan["loanedByUserId"]

    response = await client.post("/loans/return", json={"loanId": loan["id"]}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"message": f"Loan with ID {loan['id']} has already been returned."}

    [history] = (await client.get("/loans")).json()
    assert history["returnDate"] == returned["returnDate"]


@pytest.mark.asyncio
async def test_borrow_requires_token(client: AsyncClient):
    response = await _borrow(client, {}, 1)
    assert response.status_code == 401
    response = await client.post("/loans/return", json={"loanId": 1})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_borrow_validation(client: AsyncClient, user_headers):
    response = await client.post(
        "/loans/borrow", json={"itemId": 1, "itemType": "BoardGame"}, headers=user_headers
    )
    assert response.status_code == 400
    assert response.json() == {"message": "Missing required fields"}

    response = await _borrow(client, user_headers, 1, item_type="VideoGame")
    assert response.status_code == 400
    assert "Invalid itemType" in response.json()["message"]

    response = await _borrow(client, user_headers, "abc")
    assert response.status_code == 400

    response = await client.post(
        "/loans/borrow",
        json={"itemId": 1, "itemType": "Book", "borrowerName": "Bob", "dueDate": "someday"},
        headers=user_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_borrow_unknown_item(client: AsyncClient, user_headers):
    response = await _borrow(client, user_headers, 42, item_type="Book")
    assert response.status_code == 404
    assert response.json() == {"message": "Book with ID 42 not found."}


@pytest.mark.asyncio
async def test_return_errors(client: AsyncClient, user_headers):
    response = await client.post("/loans/return", json={}, headers=user_headers)
    assert response.status_code == 400
    assert response.json() == {"message": "Missing loanId"}

    response = await client.post("/loans/return", json={"loanId": 3}, headers=user_headers)
    assert response.status_code == 404
    assert response.json() == {"message": "Loan with ID 3 not found."}


@pytest.mark.asyncio
async def test_list_loans_with_filters(client: AsyncClient, admin_headers, user_headers):
    go_id = await _create_game(client, admin_headers, "Go")
    azul_id = await _create_game(client, admin_headers, "Azul")
    book = (await client.post(
        "/books", json={"title": "Dune", "author": "Frank Herbert"}, headers=admin_headers
    )).json()

    go_loan = (await _borrow(client, admin_headers, go_id, borrower="Bob Smith")).json()
    await _borrow(client, user_headers, azul_id, borrower="Alice")
    await _borrow(client, user_headers, book["id"], item_type="Book", borrower="bobby")
    await client.post("/loans/return", json={"loanId": go_loan["id"]}, headers=user_headers)

    loans = (await client.get("/loans")).json()
    assert len(loans) == 3
    first = loans[0]
    assert first["item"]["title"] == "Go"
    assert first["loanedByUsername"] == "admin_user"
    assert first["returnedByUsername"] == "regular_user"
    assert loans[2]["item"]["author"] == "Frank Herbert"
    assert loans[2]["returnedByUsername"] is None

    loaned = (await client.get("/loans", params={"status": "loaned"})).json()
    assert sorted(loan["borrowerName"] for loan in loaned) == ["Alice", "bobby"]

    returned = (await client.get("/loans", params={"status": "returned"})).json()
    assert [loan["borrowerName"] for loan in returned] == ["Bob Smith"]

    by_name = (await client.get("/loans", params={"borrowerName": "BOB"})).json()
    assert sorted(loan["borrowerName"] for loan in by_name) == ["Bob Smith", "bobby"]

    combined = (await client.get("/loans", params={"status": "loaned", "borrowerName": "bob"})).json()
    assert [loan["borrowerName"] for loan in combined] == ["bobby"]

    active = (await client.get("/loans/active")).json()
    assert active == loaned
    assert all(loan["returnDate"] is None for loan in active)


@pytest.mark.asyncio
async def test_list_loans_unknown_status_lists_everything(client: AsyncClient, user_headers):
    go_id = await _create_game(client, user_headers, "Go")
    azul_id = await _create_game(client, user_headers, "Azul")
    go_loan = (await _borrow(client, user_headers, go_id)).json()
    await _borrow(client, user_headers, azul_id, borrower="Alice")
    await client.post("/loans/return", json={"loanId": go_loan["id"]}, headers=user_headers)

    for value in ("all", "lost", ""):
        response = await client.get("/loans", params={"status": value})
        assert response.status_code == 200
        assert sorted(loan["borrowerName"] for loan in response.json()) == ["Alice", "Bob"]


@pytest.mark.asyncio
@pytest.mark.parametrize("item_id", [0, 10 ** 20])
async def test_borrow_out_of_range_id(client: AsyncClient, user_headers, item_id):
    response = await _borrow(client, user_headers, item_id)
    assert response.status_code == 400
    assert response.json() == {"message": "Invalid ID format"}


@pytest.mark.asyncio
@pytest.mark.parametrize("loan_id", [-1, 10 ** 20])
async def test_return_out_of_range_id(client: AsyncClient, user_headers, loan_id):
    response = await client.post("/loans/return", json={"loanId": loan_id}, headers=user_headers)
    assert response.status_code == 400
    assert response.json() == {"message": "Invalid ID format"}
