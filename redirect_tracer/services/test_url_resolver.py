import unittest

from redirect_tracer.exceptions import InvalidRedirectTarget
from redirect_tracer.services.url_resolver import is_absolute_http_url, resolve, same_document


class TestUrlResolver(unittest.TestCase):
    def test_root_relative(self):
        self.assertEqual(resolve("https://a.com/x/y", "/z"), "https://a.com/z")

    def test_path_relative(self):
        self.assertEqual(resolve("https://a.com/x/", "z"), "https://a.com/x/z")
        # Last path segment is replaced, not appended to
        self.assertEqual(resolve("https://a.com/x/y", "z"), "https://a.com/x/z")
        self.assertEqual(resolve("https://a.com/x/y?q=1", "../z"), "https://a.com/z")

    def test_protocol_relative(self):
        self.assertEqual(resolve("https://a.com", "//cdn.com/p"), "https://cdn.com/p")
        self.assertEqual(resolve("http://a.com/x", "//cdn.com/p"), "http://cdn.com/p")

    def test_absolute_target_used_as_is(self):
        self.assertEqual(resolve("https://a.com/p", "https://b.com/q"), "https://b.com/q")
        self.assertEqual(resolve("https://a.com/p", "http://b.com/q?x=1"), "http://b.com/q?x=1")

    def test_query_only_target(self):
        self.assertEqual(resolve("https://a.com/x/y", "?page=2"), "https://a.com/x/y?page=2")

    def test_surrounding_whitespace_is_ignored(self):
        self.assertEqual(resolve("https://a.com/", "  /login \n"), "https://a.com/login")

    def test_invalid_targets(self):
        """Empty and non-http targets cannot be followed."""
        for target in ["", "   ", "javascript:void(0)", "mailto:someone@a.com", "ftp://a.com/file"]:
            with self.assertRaises(InvalidRedirectTarget):
                resolve("https://a.com/", target)

    def test_is_absolute_http_url(self):
        self.assertTrue(is_absolute_http_url("https://a.com"))
        self.assertTrue(is_absolute_http_url("HTTP://a.com/path"))
        self.assertFalse(is_absolute_http_url("a.com"))
        self.assertFalse(is_absolute_http_url("/relative"))
        self.assertFalse(is_absolute_http_url("https://"))
        self.assertFalse(is_absolute_http_url("ftp://a.com"))

    def test_same_document(self):
        self.assertTrue(same_document("https://a.com/p#top", "https://a.com/p"))
        self.assertFalse(same_document("https://a.com/p", "https://a.com/q"))


if __name__ == "__main__":
    unittest.main()
