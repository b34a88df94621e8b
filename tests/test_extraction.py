from app.services import extraction


def test_text_files_are_read(tmp_path):
    path = tmp_path / "upload"
    path.write_text("line one\nline two", encoding="utf-8")
    assert extraction.extract_text(str(path), "notes.MD") == "line one\nline two"


def test_undecodable_text_yields_empty(tmp_path):
    path = tmp_path / "upload"
    path.write_bytes(b"\xff\xfe\xfa")
    assert extraction.extract_text(str(path), "bad.txt") == ""


def test_unknown_extension_yields_empty(tmp_path):
    path = tmp_path / "upload"
    path.write_bytes(b"data")
    assert extraction.extract_text(str(path), "slides.pptx") == ""


def test_pdf_pages_are_joined(tmp_path, monkeypatch):
    class FakePage:
        def __init__(self, text):
            self.text = text

        def extract_text(self):
            if self.text is None:
                raise ValueError("bad page")
            return self.text

    class FakeReader:
        def __init__(self, path):
            self.pages = [FakePage("Page one"), FakePage(None), FakePage("Page three")]

    monkeypatch.setattr(extraction, "PdfReader", FakeReader)
    assert extraction.extract_text(str(tmp_path / "x"), "doc.pdf") == "Page one\n\nPage three"


def test_unreadable_pdf_yields_empty(tmp_path):
    path = tmp_path / "upload"
    path.write_bytes(b"not a pdf")
    assert extraction.extract_text(str(path), "doc.pdf") == ""


def test_ocr_failure_yields_empty(tmp_path, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("tesseract missing")

    monkeypatch.setattr(extraction.Image, "open", boom)
    assert extraction.extract_text(str(tmp_path / "img"), "scan.png") == ""


def test_ocr_result_is_returned(tmp_path, monkeypatch):
    class FakeImage:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

    monkeypatch.setattr(extraction.Image, "open", lambda path: FakeImage())
    monkeypatch.setattr(
        extraction.pytesseract, "image_to_string", lambda img, lang, config: "handwritten notes"
    )
    assert extraction.extract_text(str(tmp_path / "img"), "scan.JPG") == "handwritten notes"
