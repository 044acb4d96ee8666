import os
import re
import tempfile
import unittest
from pathlib import Path

from ebooklib import epub

from quicklook.errors import MalformedPackage
from quicklook.preview import build_preview, render_error_page
from quicklook.workspace import WORK_DIR_ENV


def _write_sample_epub(output_path: Path) -> None:
    book = epub.EpubBook()
    book.set_identifier("urn:uuid:quicklook-sample")
    book.set_title("Sample")
    book.set_language("en")

    first = epub.EpubHtml(title="One", file_name="Text/one.xhtml", lang="en")
    first.content = "<html><head><title>One</title></head><body><h1>One</h1><img src=\"../Images/a.png\" alt=\"\"/></body></html>"
    second = epub.EpubHtml(title="Two", file_name="Text/two.xhtml", lang="en")
    second.content = "<html><head><title>Two</title></head><body><h1>Two</h1><a href=\"one.xhtml\">back</a></body></html>"
    image = epub.EpubItem(uid="img", file_name="Images/a.png", media_type="image/png", content=b"\x89PNG\r\n")

    book.add_item(first)
    book.add_item(second)
    book.add_item(image)
    book.toc = [first, second]
    book.spine = [second, first]
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    epub.write_epub(str(output_path), book, {"epub3_pages": False})


class BuildPreviewTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.previous = os.environ.get(WORK_DIR_ENV)
        os.environ[WORK_DIR_ENV] = str(self.tmp / "work")

    def tearDown(self) -> None:
        if self.previous is None:
            os.environ.pop(WORK_DIR_ENV, None)
        else:
            os.environ[WORK_DIR_ENV] = self.previous
        self._tmp.cleanup()

    def test_epub_archive_is_flattened(self) -> None:
        source = self.tmp / "sample.epub"
        _write_sample_epub(source)

        result = build_preview(source)

        self.assertEqual(result.index_path, result.work_dir / "ql_index.html")
        self.assertEqual(result.index_path.read_text(encoding="utf-8"), result.document.html)
        self.assertEqual(result.document.base_folder, result.work_dir / "EPUB")
        html_text = result.document.html
        self.assertEqual(re.findall(r'id="(ch\d+)"', html_text), ["ch0", "ch1"])
        self.assertLess(html_text.index("<h1>Two</h1>"), html_text.index("<h1>One</h1>"))
        image_uri = (result.work_dir / "Images" / "a.png").as_uri()
        self.assertIn(f'src="{image_uri}"', html_text)
        self.assertIn(f'href="{(result.work_dir / "EPUB" / "one.xhtml").as_uri()}"', html_text)

    def test_unpacked_directory_into_given_work_dir(self) -> None:
        source = self.tmp / "sample.epub"
        _write_sample_epub(source)
        unpacked = build_preview(source).work_dir

        target = self.tmp / "second"
        result = build_preview(unpacked, target)
        self.assertEqual(result.work_dir, target)
        self.assertTrue((target / "ql_index.html").is_file())

    def test_failure_discards_fresh_work_dir(self) -> None:
        source = self.tmp / "empty"
        (source / "OEBPS").mkdir(parents=True)
        (source / "OEBPS" / "content.opf").write_text(
            "<package><manifest><item id=\"c\" href=\"cover.png\"/></manifest>"
            "<spine><itemref idref=\"c\"/></spine></package>",
            encoding="utf-8",
        )
        with self.assertRaises(MalformedPackage):
            build_preview(source)
        self.assertEqual(list((self.tmp / "work").iterdir()), [])


class PageRenderingTests(unittest.TestCase):
    def test_error_page_escapes_description(self) -> None:
        page = render_error_page(MalformedPackage("bad <spine> & more"))
        self.assertIn("EPUB Quick Look Error", page)
        self.assertIn("<pre>bad &lt;spine&gt; &amp; more</pre>", page)

    def test_error_page_falls_back_to_type_name(self) -> None:
        self.assertIn("<pre>MalformedPackage</pre>", render_error_page(MalformedPackage()))


if __name__ == "__main__":
    unittest.main()
