from uuid import uuid4

import pytest

from lms_media.errors import InvalidCredential, ObjectNotFound, StorageError
from lms_media.models import Identity
from lms_media.storage import ObjectInfo


class FakeStore:
    def __init__(self, *, fail: bool = False, objects: dict | None = None):
        self.fail = fail
        self.objects = objects or {}
        self.sign_calls = []

    def sign(self, key, expires_in, *, issued_at=None):
        self.sign_calls.append((key, expires_in))
        if self.fail:
            raise StorageError("connect timeout to https://acct.r2.cloudflarestorage.com")
        return (
            f"https://media.example.com/{key}"
            f"?X-Amz-Expires={expires_in}&X-Amz-Signature={uuid4().hex}"
        )

    def stat(self, key):
        if self.fail:
            raise StorageError("head failed")
        if key not in self.objects:
            raise ObjectNotFound(key)
        size, content_type = self.objects[key]
        return ObjectInfo(key=key, size=size, content_type=content_type)


class FakeVerifier:
    def __init__(self, tokens: dict | None = None):
        self.tokens = tokens if tokens is not None else {"good-token": "user-1"}
        self.calls = []

    def verify(self, token):
        self.calls.append(token)
        if token not in self.tokens:
            raise InvalidCredential()
        return Identity(subject_id=self.tokens[token])


@pytest.fixture
def store():
    return FakeStore(
        objects={
            "lessons/42/video.mp4": (1048576, "video/mp4"),
            "lessons/42/listening.mp3": (20480, "audio/mpeg"),
            "lessons/42/worksheet.pdf": (4096, "application/pdf"),
        }
    )


@pytest.fixture
def verifier():
    return FakeVerifier()
