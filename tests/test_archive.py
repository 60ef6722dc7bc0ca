import io
import zipfile

from webforge.services.archive_service import archive_filename, build_archive, read_archive


def test_entries_byte_match_content():
    files = {"index.html": "<h1>Héllo</h1>", "css/style.css": "body{}", "js/app.js": "console.log('ü')"}
    entries = read_archive(build_archive(files))
    assert set(entries) == set(files)
    for path, content in files.items():
        assert entries[path] == content.encode("utf-8")


def test_same_input_same_bytes_regardless_of_insertion_order():
    a = {"b.html": "B", "a.html": "A", "c/d.css": "D"}
    b = {"c/d.css": "D", "a.html": "A", "b.html": "B"}
    assert build_archive(a) == build_archive(b)


def test_entries_are_sorted_and_compressed():
    data = build_archive({"z.txt": "z" * 500, "a.txt": "a" * 500})
    with zipfile.ZipFile(io.BytesIO(data)) as z:
        infos = z.infolist()
    assert [i.filename for i in infos] == ["a.txt", "z.txt"]
    assert all(i.compress_type == zipfile.ZIP_DEFLATED for i in infos)


def test_archive_filename():
    assert archive_filename("My Bakery!", "1234567890") == "My_Bakery.zip"
    assert archive_filename("", "abcdef123456") == "website-abcdef12.zip"
