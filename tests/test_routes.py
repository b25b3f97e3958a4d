import io
import json

from app import create_app


def test_home(client):
    assert client.get("/").get_json() == {"message": "Portfolio builder API running"}


def test_api_requires_sign_in(client):
    response = client.get("/api/portfolios")
    assert response.status_code == 401
    assert response.get_json()["notifications"][0]["title"] == "Not Signed In"


def test_sign_in_and_me(client):
    response = client.post("/api/auth/signin", json={"credential": "ada"})
    body = response.get_json()
    assert body["ok"] is True
    assert body["view"] == "dashboard"

    me = client.get("/api/auth/me").get_json()
    assert me["user"]["uid"] == "uid-ada"

    client.post("/api/auth/signout")
    assert client.get("/api/auth/me").get_json()["user"] is None


def test_bad_sign_in(client):
    response = client.post("/api/auth/signin", json={"credential": "bad-token"})
    assert response.status_code == 401


def test_editor_flow_save_and_list(signed_in, store):
    editor = signed_in.post("/api/portfolios/new").get_json()["data"]["editor"]
    project_row = editor["groups"]["projects"][0]["rowId"]

    signed_in.post("/api/editor/field", json={"name": "portfolioTitle", "value": "My Portfolio"})
    signed_in.post("/api/editor/field", json={"name": "firstName", "value": "Jane"})
    response = signed_in.patch(
        f"/api/editor/items/projects/{project_row}",
        json={"values": {"title": "Site", "liveUrl": "https://jane.dev"}},
    )
    assert response.get_json()["data"]["valid"] is True

    step = signed_in.post("/api/editor/step", json={"direction": "next"}).get_json()
    assert step["data"]["editor"]["stepName"] == "experience"

    saved = signed_in.post("/api/editor/save")
    assert saved.status_code == 200
    body = saved.get_json()
    assert body["notifications"][0]["message"] == "Portfolio saved!"

    listing = signed_in.get("/api/portfolios").get_json()
    assert [p["portfolioTitle"] for p in listing["data"]["portfolios"]] == ["My Portfolio"]
    assert store.get("uid-ada", body["data"]["id"])["projects"][0]["liveUrl"] == "https://jane.dev"


def test_save_with_invalid_project_url_is_rejected(signed_in, store):
    editor = signed_in.post("/api/portfolios/new").get_json()["data"]["editor"]
    project_row = editor["groups"]["projects"][0]["rowId"]
    signed_in.post("/api/editor/field", json={"name": "portfolioTitle", "value": "My Portfolio"})
    signed_in.post("/api/editor/field", json={"name": "firstName", "value": "Jane"})
    signed_in.patch(
        f"/api/editor/items/projects/{project_row}",
        json={"values": {"title": "Site", "liveUrl": "not-a-url"}},
    )

    response = signed_in.post("/api/editor/save")
    assert response.status_code == 400
    assert response.get_json()["errors"] == [
        {"field": "projects[0].liveUrl", "message": "Project 1: Live Demo URL is invalid."}
    ]
    assert store.list("uid-ada") == []


def test_picture_upload_endpoint(signed_in, uploader):
    signed_in.post("/api/portfolios/new")
    response = signed_in.post(
        "/api/editor/picture",
        data={"profilePic": (io.BytesIO(b"\x89PNG"), "me.png", "image/png")},
        content_type="multipart/form-data",
    )
    assert response.get_json()["data"]["editor"]["picture"]["state"] == "local"

    response = signed_in.delete("/api/editor/picture")
    assert response.get_json()["data"]["editor"]["picture"]["state"] == "absent"
    assert uploader.uploads == []


def test_delete_with_confirmation(signed_in, store, make_record):
    pid = store.create("uid-ada", make_record())
    response = signed_in.delete(f"/api/portfolios/{pid}")
    assert response.get_json()["notifications"][0]["kind"] == "confirm"
    assert store.get("uid-ada", pid) is not None

    signed_in.post("/api/confirm")
    assert store.get("uid-ada", pid) is None


def test_share_link_round_trip(signed_in, client, store, make_record):
    pid = store.create("uid-ada", make_record())
    share_url = signed_in.post(f"/api/portfolios/{pid}/share").get_json()["data"]["shareUrl"]
    assert share_url.endswith(f"?id={pid}")

    page = client.get(f"/p?id={pid}")
    assert page.status_code == 200
    assert b"Ada Lovelace" in page.data

    signed_in.delete(f"/api/portfolios/{pid}/share")
    assert client.get(f"/p?id={pid}").status_code == 404


def test_public_page_for_unknown_id(client):
    response = client.get("/p?id=missing")
    assert response.status_code == 404
    assert b"Portfolio not found" in response.data
    assert client.get("/p").status_code == 404


def test_export_download_and_import_upload(signed_in, store, make_record):
    pid = store.create("uid-ada", make_record())
    response = signed_in.get(f"/api/portfolios/{pid}/export")
    assert response.status_code == 200
    assert "Full_Stack_Developer.json" in response.headers["Content-Disposition"]
    exported = json.loads(response.data)
    assert "id" not in exported

    response = signed_in.post(
        "/api/portfolios/import",
        data={"file": (io.BytesIO(response.data), "Full_Stack_Developer.json")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert len(store.list("uid-ada")) == 2


def test_import_raw_body_rejects_invalid(signed_in):
    response = signed_in.post("/api/portfolios/import", data="[]", content_type="application/json")
    assert response.status_code == 400
    assert response.get_json()["notifications"][0]["title"] == "Import Failed"


def test_pdf_download(signed_in, store, make_record):
    pid = store.create("uid-ada", make_record())
    response = signed_in.get(f"/api/portfolios/{pid}/pdf")
    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert "ada-lovelace.pdf" in response.headers["Content-Disposition"]


def test_pdf_for_missing_portfolio(signed_in):
    assert signed_in.get("/api/portfolios/nope/pdf").status_code == 404


def test_preview_endpoints(signed_in, store, make_record):
    pid = store.create("uid-ada", make_record(template="classic"))
    body = signed_in.get(f"/api/portfolios/{pid}/preview").get_json()
    assert body["view"] == "preview"
    assert "portfolio-template classic" in body["data"]["html"]

    signed_in.post("/api/portfolios/new")
    signed_in.post("/api/editor/field", json={"name": "firstName", "value": "Grace"})
    assert "Grace" in signed_in.get("/api/editor/preview").get_json()["data"]["html"]


def test_assist_endpoints(signed_in, assistant):
    signed_in.post("/api/portfolios/new")
    body = signed_in.post("/api/assist/improve", json={"text": "I code", "target": "summary"}).get_json()
    assert body["data"]["text"] == "Improved: I code"

    body = signed_in.post("/api/assist/apply", json={"target": "summary", "text": body["data"]["text"]}).get_json()
    assert body["data"]["editor"]["fields"]["summary"] == "Improved: I code"

    assistant.fail = True
    response = signed_in.post("/api/assist/bullets", json={"text": "I code"})
    assert response.status_code == 502
    assert response.get_json()["notifications"][0]["title"] == "AI Error"


def test_draft_endpoint(signed_in):
    body = signed_in.post("/api/assist/draft", json={"notes": "Engineer at Analytical Co"}).get_json()
    assert body["view"] == "editor"
    assert body["data"]["editor"]["fields"]["portfolioTitle"] == "Backend Engineer"


def test_theme_without_sign_in(client):
    body = client.post("/api/theme", json={"theme": "theme-ocean"}).get_json()
    assert body["data"]["theme"] == "theme-ocean"
    assert client.get("/api/auth/me").get_json()["theme"] == "theme-ocean"


def test_options(client):
    body = client.get("/api/options").get_json()
    assert body["templates"] == ["modern", "classic", "bold"]
    assert "theme-space" in body["themes"]
    assert body["skillLevels"] == ["Novice", "Intermediate", "Advanced", "Expert"]


def test_anonymous_requests_do_not_hold_sessions(app):
    sessions = app.extensions["portfolio_sessions"]
    for _ in range(25):
        fresh = app.test_client()
        assert fresh.get("/api/portfolios").status_code == 401
        assert fresh.get("/api/auth/me").get_json()["user"] is None
    assert len(sessions) == 0


def test_sign_out_releases_session_state(app, signed_in):
    sessions = app.extensions["portfolio_sessions"]
    assert len(sessions) == 1
    signed_in.post("/api/auth/signout")
    assert len(sessions) == 0
    assert signed_in.get("/api/portfolios").status_code == 401


def test_session_limit_comes_from_config(store, identity, assistant, uploader):
    app = create_app(
        overrides={"TESTING": True, "SECRET_KEY": "test-secret", "LOG_LEVEL": "WARNING", "MAX_SESSIONS": 2},
        store=store,
        identity=identity,
        assistant=assistant,
        uploader=uploader,
    )
    for _ in range(4):
        app.test_client().post("/api/auth/signin", json={"credential": "ada"})
    assert len(app.extensions["portfolio_sessions"]) == 2


def test_malformed_editor_requests_are_bad_requests(signed_in):
    editor = signed_in.post("/api/portfolios/new").get_json()["data"]["editor"]
    skill_row = editor["groups"]["skills"][0]["rowId"]

    assert signed_in.post("/api/editor/items/skills", json={"initial": "Python"}).status_code == 400
    assert signed_in.patch(f"/api/editor/items/skills/{skill_row}", json={"values": ["Python"]}).status_code == 400
    assert signed_in.post(f"/api/editor/items/skills/{skill_row}/move", json={"index": None}).status_code == 400
    assert signed_in.post(f"/api/editor/items/skills/{skill_row}/move", json={"index": "top"}).status_code == 400
    assert signed_in.post("/api/editor/field", json={"name": {"x": 1}, "value": "Jane"}).status_code == 400


def test_save_with_script_project_url_is_rejected(signed_in, store):
    editor = signed_in.post("/api/portfolios/new").get_json()["data"]["editor"]
    project_row = editor["groups"]["projects"][0]["rowId"]
    signed_in.post("/api/editor/field", json={"name": "portfolioTitle", "value": "My Portfolio"})
    signed_in.post("/api/editor/field", json={"name": "firstName", "value": "Jane"})
    response = signed_in.patch(
        f"/api/editor/items/projects/{project_row}",
        json={"values": {"title": "Site", "liveUrl": "javascript:alert(document.cookie)"}},
    )
    assert response.get_json()["data"]["valid"] is False

    assert signed_in.post("/api/editor/save").status_code == 400
    assert store.list("uid-ada") == []


def test_import_with_script_url_is_rejected(signed_in, store):
    content = json.dumps({
        "portfolioTitle": "Site",
        "firstName": "Eve",
        "projects": [{"title": "Click", "liveUrl": "javascript:alert(1)"}],
    })
    response = signed_in.post("/api/portfolios/import", data=content, content_type="application/json")
    assert response.status_code == 400
    assert store.list("uid-ada") == []
