import pytest
from frontend.web import app as flask_app

@pytest.mark.e2e
def test_frontend_health_or_fallback(monkeypatch):
    import frontend.web as webmod
    monkeypatch.setattr(webmod, "_vocabulary", ["alpha", "beta"])

    client = flask_app.test_client()
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json() == {"ok": True, "words": 2}
