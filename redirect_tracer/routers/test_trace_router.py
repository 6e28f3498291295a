import unittest
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from redirect_tracer.main import app
from redirect_tracer.schemas import RedirectChain, RedirectStep

TRACE_URL = "/api/trace-redirects"


def sample_chain() -> RedirectChain:
    steps = [
        RedirectStep(
            url="https://a.com",
            status_code=301,
            status_text="Moved Permanently",
            headers={"location": "https://b.com"},
            response_time=40,
            redirect_type="HTTP 301",
        ),
        RedirectStep(
            url="https://b.com",
            status_code=200,
            status_text="OK",
            headers={"content-type": "text/html"},
            response_time=60,
        ),
    ]
    return RedirectChain.from_steps(steps, "https://b.com")


class TestTraceRouter(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(app)

    def assertCorsHeaders(self, response):
        self.assertEqual(response.headers["access-control-allow-origin"], "*")
        self.assertEqual(response.headers["access-control-allow-headers"], "Content-Type")
        self.assertEqual(response.headers["access-control-allow-methods"], "GET, POST, OPTIONS")

    def test_trace_returns_chain(self):
        with patch(
            "redirect_tracer.routers.trace_redirects.get_redirect_chain",
            new=AsyncMock(return_value=sample_chain()),
        ) as traced:
            response = self.client.post(TRACE_URL, json={"url": "https://a.com"})

        traced.assert_awaited_once_with("https://a.com")
        self.assertEqual(response.status_code, 200)
        self.assertCorsHeaders(response)
        data = response.json()
        self.assertEqual(data["finalUrl"], "https://b.com")
        self.assertEqual(data["totalTime"], 100)
        self.assertEqual(data["totalRedirects"], 1)
        self.assertEqual(len(data["steps"]), 2)
        self.assertEqual(data["steps"][0]["statusCode"], 301)
        self.assertEqual(data["steps"][0]["statusText"], "Moved Permanently")
        self.assertEqual(data["steps"][0]["responseTime"], 40)
        self.assertEqual(data["steps"][0]["redirectType"], "HTTP 301")
        # Unset optional fields are omitted
        self.assertNotIn("redirectType", data["steps"][1])
        self.assertNotIn("redirectDelay", data["steps"][1])

    def test_missing_url(self):
        for body in [{}, {"url": ""}, {"url": None}]:
            response = self.client.post(TRACE_URL, json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {"error": "URL is required"})
            self.assertCorsHeaders(response)

    def test_malformed_body(self):
        response = self.client.post(
            TRACE_URL, content="{not json", headers={"Content-Type": "application/json"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "URL is required"})
        self.assertCorsHeaders(response)

    def test_invalid_url(self):
        response = self.client.post(TRACE_URL, json={"url": "not a url"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid URL provided"})
        self.assertCorsHeaders(response)

    def test_internal_fault(self):
        with patch(
            "redirect_tracer.routers.trace_redirects.get_redirect_chain",
            new=AsyncMock(side_effect=RuntimeError("secret internals")),
        ):
            response = self.client.post(TRACE_URL, json={"url": "https://a.com"})

        self.assertEqual(response.status_code, 500)
        data = response.json()
        self.assertEqual(data["error"], "Failed to trace redirects")
        self.assertNotIn("secret internals", response.text)
        self.assertCorsHeaders(response)

    def test_preflight(self):
        response = self.client.options(TRACE_URL)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"")
        self.assertCorsHeaders(response)

    def test_browser_preflight(self):
        """A cross-origin preflight, extra requested headers included, gets an empty 200."""
        for requested_headers in ["content-type", "content-type, x-requested-with"]:
            response = self.client.options(
                TRACE_URL,
                headers={
                    "Origin": "https://ui.example.com",
                    "Access-Control-Request-Method": "POST",
                    "Access-Control-Request-Headers": requested_headers,
                },
            )
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.content, b"")
            self.assertCorsHeaders(response)

    def test_other_methods_not_allowed(self):
        for method in ["GET", "PUT", "DELETE"]:
            response = self.client.request(method, TRACE_URL)
            self.assertEqual(response.status_code, 405)
            self.assertEqual(response.json(), {"error": "Method not allowed"})
            self.assertCorsHeaders(response)

    def test_cors_on_cross_origin_post(self):
        with patch(
            "redirect_tracer.routers.trace_redirects.get_redirect_chain",
            new=AsyncMock(return_value=sample_chain()),
        ):
            response = self.client.post(
                TRACE_URL, json={"url": "https://a.com"}, headers={"Origin": "https://ui.example.com"}
            )

        self.assertEqual(response.status_code, 200)
        self.assertCorsHeaders(response)

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
