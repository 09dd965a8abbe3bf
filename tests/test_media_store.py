import io

from botocore.exceptions import ClientError
from starlette.datastructures import Headers, UploadFile

from app.services.media_store import R2MediaStore


class StubS3:
    def __init__(self, fail_delete=False):
        self.uploads = []
        self.fail_delete = fail_delete

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        self.uploads.append((bucket, key, ExtraArgs))

    def delete_object(self, Bucket, Key):
        if self.fail_delete:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject")

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://signed.example.com/{Params['Key']}?ttl={ExpiresIn}"


def upload(name, content_type):
    return UploadFile(
        file=io.BytesIO(b"data"),
        filename=name,
        headers=Headers({"content-type": content_type}),
    )


def test_upload_keys_are_slugged_by_folder():
    s3 = StubS3()
    store = R2MediaStore(s3, "movies-bucket")

    key = store.upload_movie(upload("Final Cut.MP4", "video/mp4"), "The Lunchbox!")

    assert key.startswith("movies/the-lunchbox_")
    assert key.endswith(".mp4")
    assert s3.uploads == [("movies-bucket", key, {"ContentType": "video/mp4"})]
    assert store.upload_poster(upload("p.jpg", "image/jpeg"), "Lunchbox").startswith("posters/lunchbox_")


def test_delete_reports_failure():
    assert R2MediaStore(StubS3(), "b").delete("movies/a.mp4") is True
    assert R2MediaStore(StubS3(fail_delete=True), "b").delete("movies/a.mp4") is False


def test_stream_url_prefers_public_base():
    public = R2MediaStore(StubS3(), "b", public_base="https://cdn.example.com/")
    private = R2MediaStore(StubS3(), "b")

    assert public.stream_url("movies/a.mp4", 600) == "https://cdn.example.com/movies/a.mp4"
    assert private.stream_url("movies/a.mp4", 600) == "https://signed.example.com/movies/a.mp4?ttl=600"
    assert private.stream_url("movies/a.mp4", -5).endswith("ttl=1")
