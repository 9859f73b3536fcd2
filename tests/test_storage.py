import io

import pytest
from botocore.exceptions import ClientError

from docfill.storage import PdfStorage


@pytest.fixture
def storage(tmp_path):
    return PdfStorage(tmp_path, s3_bucket="")


def test_save_load_delete(storage, tmp_path):
    meta = storage.save("report.pdf", b"%PDF-1.7 test")
    assert meta == {"file_path": str(tmp_path / "generated" / "report.pdf")}
    assert storage.load("report.pdf") == b"%PDF-1.7 test"

    assert storage.delete("report.pdf") is True
    assert storage.load("report.pdf") is None


def test_delete_missing_file_is_not_an_error(storage):
    assert storage.delete("never-written.pdf") is False


@pytest.mark.parametrize("name", ["../escape.pdf", "nested/file.pdf", ""])
def test_unsafe_names(storage, name):
    with pytest.raises(ValueError):
        storage.save(name, b"x")
    assert storage.load(name) is None
    assert storage.delete(name) is False


class FakeS3:
    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[(Bucket, Key)] = Body

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)


def test_s3_mode_uses_prefixed_keys(tmp_path):
    s3 = FakeS3()
    storage = PdfStorage(tmp_path, s3_bucket="bucket", s3_prefix="pdfs/", s3_client=s3)

    meta = storage.save("report.pdf", b"data")
    assert meta == {"s3_bucket": "bucket", "s3_key": "pdfs/report.pdf"}
    assert s3.objects[("bucket", "pdfs/report.pdf")] == b"data"

    assert storage.delete("report.pdf") is True
    assert storage.delete("report.pdf") is True
    assert s3.objects == {}


def test_s3_load(tmp_path):
    s3 = FakeS3()
    storage = PdfStorage(tmp_path, s3_bucket="bucket", s3_prefix="pdfs/", s3_client=s3)
    storage.save("report.pdf", b"data")

    assert storage.load("report.pdf") == b"data"
    assert storage.load("missing.pdf") is None


def test_s3_load_reraises_other_errors(tmp_path):
    class DeniedS3(FakeS3):
        def get_object(self, Bucket, Key):
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GetObject")

    storage = PdfStorage(tmp_path, s3_bucket="bucket", s3_client=DeniedS3())
    with pytest.raises(ClientError):
        storage.load("report.pdf")
