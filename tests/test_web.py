import pytest

from mortgage_calc_web.app import create_app
from mortgage_calc_web.portfolio_store import PortfolioStore


@pytest.fixture
def app(tmp_path):
    return create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "PORTFOLIO_DATABASE_URL": f"sqlite:///{tmp_path / 'portfolios.sqlite3'}",
            "PORTFOLIO_MAX_PER_USER": 2,
        }
    )


@pytest.fixture
def client(app):
    return app.test_client()


def _save(client, portfolio, name="Mine"):
    response = client.post("/api/portfolios", json={"name": name, "portfolio": portfolio})
    assert response.status_code == 201
    return response.get_json()["id"]


class TestScheduleEndpoint:
    def test_schedule(self, client, portfolio_dict):
        response = client.post("/api/schedule", json=portfolio_dict)
        assert response.status_code == 200
        data = response.get_json()
        assert data["currency"] == "USD"
        assert data["errors"] == []
        assert data["summary"]["plans"] == 2
        home = [r for r in data["rows"] if r["plan_id"] == "home"]
        assert home[0]["scheduled_payment"] == 8606.64
        assert home[2]["extra_payment"] == 10000.0
        assert home[-1]["closing_balance"] == 0.0

    def test_invalid_plan_reported_not_fatal(self, client, portfolio_dict):
        portfolio_dict["plans"][1]["term_months"] = 0
        data = client.post("/api/schedule", json=portfolio_dict).get_json()
        assert {r["plan_id"] for r in data["rows"]} == {"home"}
        assert data["errors"] == [
            {"plan_id": "car", "field": "term_months", "message": "term must be at least one month"}
        ]

    def test_bad_payload(self, client):
        response = client.post("/api/schedule", json={"plans": [{"id": "a"}]})
        assert response.status_code == 400
        assert "missing" in response.get_json()["error"]

    def test_non_object_body(self, client):
        response = client.post("/api/schedule", json=[1, 2])
        assert response.status_code == 400

    def test_repeated_request_served_from_cache(self, app, client, portfolio_dict):
        client.post("/api/schedule", json=portfolio_dict)
        client.post("/api/schedule", json=portfolio_dict)
        cache = app.extensions["schedule_cache"]
        assert cache.misses == 1
        assert cache.hits == 1


class TestSavedPortfolios:
    def test_save_list_get_delete(self, client, portfolio_dict):
        portfolio_id = _save(client, portfolio_dict)

        listing = client.get("/api/portfolios").get_json()
        assert [p["id"] for p in listing] == [portfolio_id]
        assert listing[0]["name"] == "Mine"
        assert "portfolio" not in listing[0]

        saved = client.get(f"/api/portfolios/{portfolio_id}").get_json()
        assert saved["portfolio"] == portfolio_dict

        assert client.delete(f"/api/portfolios/{portfolio_id}").status_code == 204
        assert client.get(f"/api/portfolios/{portfolio_id}").status_code == 404
        assert client.delete(f"/api/portfolios/{portfolio_id}").status_code == 404

    def test_invalid_portfolio_not_saved(self, client):
        response = client.post("/api/portfolios", json={"name": "x", "portfolio": {"plans": []}})
        assert response.status_code == 400
        assert client.get("/api/portfolios").get_json() == []

    def test_saved_schedule(self, client, portfolio_dict):
        portfolio_id = _save(client, portfolio_dict)
        data = client.get(f"/api/portfolios/{portfolio_id}/schedule").get_json()
        assert len([r for r in data["rows"] if r["plan_id"] == "car"]) == 12

    def test_snapshot(self, client, portfolio_dict):
        portfolio_id = _save(client, portfolio_dict)
        response = client.get(f"/api/portfolios/{portfolio_id}/snapshot?as_of=2024-02-01")
        assert response.status_code == 200
        data = response.get_json()
        assert data["as_of"] == "2024-02-01"
        assert data["plans"]["home"]["balance"] == 91893.36
        assert data["plans"]["car"]["balance"] == 11000.0
        assert data["payment"] == 9606.64

    def test_other_users_cannot_see(self, app, client, portfolio_dict):
        portfolio_id = _save(client, portfolio_dict)
        other = app.test_client()
        assert other.get("/api/portfolios").get_json() == []
        assert other.get(f"/api/portfolios/{portfolio_id}").status_code == 404

    def test_clear(self, client, portfolio_dict):
        _save(client, portfolio_dict)
        assert client.delete("/api/portfolios").status_code == 204
        assert client.get("/api/portfolios").get_json() == []

    def test_per_user_limit(self, client, portfolio_dict):
        for n in range(3):
            _save(client, portfolio_dict, name=f"p{n}")
        assert len(client.get("/api/portfolios").get_json()) == 2

    def test_rename_and_replace(self, client, portfolio_dict):
        portfolio_id = _save(client, portfolio_dict)
        portfolio_dict["plans"] = portfolio_dict["plans"][:1]
        response = client.put(
            f"/api/portfolios/{portfolio_id}", json={"name": "Renamed", "portfolio": portfolio_dict}
        )
        assert response.status_code == 200
        saved = response.get_json()
        assert saved["name"] == "Renamed"
        assert saved["plans"] == 1
        assert saved["portfolio"] == portfolio_dict

    def test_update_validates_portfolio(self, client, portfolio_dict):
        portfolio_id = _save(client, portfolio_dict)
        response = client.put(f"/api/portfolios/{portfolio_id}", json={"portfolio": {"plans": []}})
        assert response.status_code == 400
        saved = client.get(f"/api/portfolios/{portfolio_id}").get_json()
        assert saved["portfolio"] == portfolio_dict

    def test_update_missing(self, client):
        assert client.put("/api/portfolios/nope", json={"name": "x"}).status_code == 404


class TestCompareEndpoint:
    def test_compare(self, client, portfolio_dict):
        portfolio_dict["extra_payments"] = []
        response = client.post(
            "/api/compare",
            json={
                "portfolio": portfolio_dict,
                "extra_payments": [{"plan_id": "home", "period": 3, "amount": "10000"}],
            },
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data["interest_saved"] > 0
        assert data["base"]["total_extra"] == 0.0
        assert data["scenario"]["total_extra"] == 10000.0

    def test_compare_rate_change(self, client, portfolio_dict):
        response = client.post(
            "/api/compare",
            json={
                "portfolio": portfolio_dict,
                "rate_changes": [{"plan_id": "home", "period": 7, "new_annual_rate": "12"}],
            },
        )
        assert response.status_code == 200
        assert response.get_json()["interest_saved"] < 0

    def test_nothing_to_simulate(self, client, portfolio_dict):
        response = client.post("/api/compare", json={"portfolio": portfolio_dict})
        assert response.status_code == 400
        assert "Nothing to simulate" in response.get_json()["error"]


class TestPortfolioStore:
    @pytest.fixture
    def store(self, tmp_path):
        return PortfolioStore(f"sqlite:///{tmp_path / 'store.sqlite3'}", max_per_user=3)

    def test_round_trip(self, store):
        portfolio_id = store.save_portfolio("u1", "First", {"plans": [{"id": "a"}]}, portfolio_id="abc")
        assert portfolio_id == "abc"
        saved = store.get_portfolio("u1", "abc")
        assert saved["portfolio"] == {"plans": [{"id": "a"}]}
        assert saved["plans"] == 1
        assert store.get_portfolio("u2", "abc") is None
        assert store.delete_portfolio("u2", "abc") is False
        assert store.delete_portfolio("u1", "abc") is True
        assert store.list_portfolios("u1") == []

    def test_generated_ids(self, store):
        first = store.save_portfolio("u1", "First", {})
        second = store.save_portfolio("u1", "Second", {})
        assert first != second
        assert {p["id"] for p in store.list_portfolios("u1")} == {first, second}

    def test_update_only_owner(self, store):
        store.save_portfolio("u1", "First", {"plans": []}, portfolio_id="abc")
        assert store.update_portfolio("u2", "abc", name="Stolen") is False
        assert store.update_portfolio("u1", "abc", name="Renamed") is True
        saved = store.get_portfolio("u1", "abc")
        assert saved["name"] == "Renamed"
        assert saved["portfolio"] == {"plans": []}

    def test_limit_drops_oldest(self, store):
        ids = [store.save_portfolio("u1", f"p{n}", {}) for n in range(5)]
        remaining = {p["id"] for p in store.list_portfolios("u1")}
        assert len(remaining) == store.max_per_user
        assert ids[-1] in remaining
        assert ids[0] not in remaining

    def test_delete_all_counts(self, store):
        store.save_portfolio("u1", "a", {})
        store.save_portfolio("u1", "b", {})
        store.save_portfolio("u2", "c", {})
        assert store.delete_all("u1") == 2
        assert store.list_portfolios("u1") == []
        assert len(store.list_portfolios("u2")) == 1

    def test_empty_token_ignored(self, store):
        assert store.save_portfolio("", "First", {}) is None
        assert store.list_portfolios("") == []
        assert store.get_portfolio("", "abc") is None
        assert store.delete_all("") == 0
