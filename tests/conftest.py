import io
import json

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from docchat.database import Database
from docchat.main import app, configure
from docchat.selection import DocumentDescriptor


class FakeLLM:
    def __init__(self, replies=None, error=None):
        self.replies = list(replies or ["Here is a short answer."])
        self.error = error
        self.calls = []

    def is_configured(self):
        return True

    async def invoke(self, prompt, max_tokens):
        self.calls.append((prompt, max_tokens))
        if self.error is not None:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]

    @property
    def last_prompt(self):
        return self.calls[-1][0]


class FakeBedrock:
    """Stand-in for a bedrock-runtime client: each outcome is a reply text or an exception."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def invoke_model(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        body = json.dumps({"content": [{"type": "text", "text": outcome}]}).encode("utf-8")
        return {"body": io.BytesIO(body)}


def client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "InvokeModel")


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def make_doc(doc_id, display_name, stored=None):
    return DocumentDescriptor(id=doc_id, stored_file_name=stored or display_name, display_name=display_name)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "test.sqlite"))
    database.init_schema()
    return database


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def client(db, fake_llm, upload_dir):
    configure(app, db, fake_llm, upload_dir)
    return TestClient(app)
