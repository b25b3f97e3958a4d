from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from identity.services import GoogleIdentityProvider
from portfolio.errors import AssistError, MediaError
from portfolio.services import Action, PortfolioController
from portfolio.storage import MemoryPortfolioStore

SHARE_BASE = "https://portfolio.test/p"
HOSTED_URL = "https://res.cloudinary.test/profile.png"


class FakeClock:
    """Advances one second per call so lastModified ordering is deterministic."""

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


class CountingIds:
    def __init__(self):
        self.count = 0

    def __call__(self):
        self.count += 1
        return f"p{self.count}"


class FakeAssistant:
    def __init__(self):
        self.fail = False
        self.calls = []

    def _check(self, name, text):
        self.calls.append((name, text))
        if self.fail:
            raise AssistError("Sorry, there was an error: quota exceeded")

    def improve_writing(self, text):
        self._check("improve", text)
        return f"Improved: {text}"

    def generate_bullet_points(self, text):
        self._check("bullets", text)
        return f"* {text}"

    def generate_first_draft(self, notes):
        self._check("draft", notes)
        return {
            "portfolioTitle": "Backend Engineer",
            "firstName": "Ada",
            "lastName": "Lovelace",
            "summary": notes,
            "experience": [{"title": "Engineer", "company": "Analytical Co", "dates": "", "description": ""}],
            "skills": [{"name": "Python", "level": "Expert"}],
        }


class FakeUploader:
    def __init__(self):
        self.fail = False
        self.uploads = []

    def upload_data_url(self, data_url):
        self.uploads.append(data_url)
        if self.fail:
            raise MediaError("Image upload failed: connection reset")
        return HOSTED_URL


def fake_verifier(credential, client_id):
    if credential == "bad-token":
        raise ValueError("Token expired")
    return {
        "sub": f"uid-{credential}",
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "picture": "https://avatars.test/ada.png",
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryPortfolioStore(SHARE_BASE, clock=clock, id_factory=CountingIds())


@pytest.fixture
def identity():
    return GoogleIdentityProvider(client_id="test-client", verifier=fake_verifier)


@pytest.fixture
def assistant():
    return FakeAssistant()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def controller(store, identity, assistant, uploader):
    return PortfolioController(store, identity, assistant, uploader)


@pytest.fixture
def state(controller):
    """A session that is already signed in and on the dashboard."""
    state = controller.new_state()
    outcome = controller.dispatch(state, Action.SIGN_IN, credential="ada")
    assert outcome.ok
    return state


@pytest.fixture
def app(store, identity, assistant, uploader):
    app = create_app(
        overrides={"TESTING": True, "SECRET_KEY": "test-secret", "LOG_LEVEL": "WARNING"},
        store=store,
        identity=identity,
        assistant=assistant,
        uploader=uploader,
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def signed_in(client):
    response = client.post("/api/auth/signin", json={"credential": "ada"})
    assert response.status_code == 200
    return client


def sample_record(**overrides):
    record = {
        "portfolioTitle": "Full Stack Developer",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "ada@example.com",
        "summary": "I build **reliable** things.",
        "template": "modern",
        "theme": "theme-light",
        "profilePic": None,
        "experience": [
            {"title": "Engineer", "company": "Analytical Co", "dates": "2020 - Present", "description": "* Shipped"},
        ],
        "education": [{"degree": "BSc Mathematics", "institution": "London", "year": "2019"}],
        "skills": [{"name": "Python", "level": "Expert"}],
        "projects": [
            {
                "title": "Engine",
                "description": "A difference engine.",
                "technologies": "Python, Flask",
                "liveUrl": "https://engine.example.com",
                "repoUrl": "https://github.com/ada/engine",
            },
        ],
    }
    record.update(overrides)
    return record


@pytest.fixture
def make_record():
    return sample_record
