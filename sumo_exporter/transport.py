import base64
import logging

import requests

from sumo_exporter.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.us2.sumologic.com/api/v1/search/jobs"
DEFAULT_REQUEST_TIMEOUT = 60


def basic_credentials(access_id, access_key):
    return base64.b64encode(f"{access_id}:{access_key}".encode("utf-8")).decode("ascii")


class SumoClient:
    """Thin HTTP layer for the search job API.

    Every request carries the same Basic authorization header and a JSON
    content type. Responses are returned as-is; status handling is left to
    the caller.
    """

    def __init__(self, access_id, access_key, api_url=DEFAULT_API_URL,
                 timeout=DEFAULT_REQUEST_TIMEOUT, session=None):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Basic {basic_credentials(access_id, access_key)}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def url(self, *parts):
        return "/".join([self.api_url, *(str(p) for p in parts)])

    def _request(self, method, url, **kwargs):
        logger.debug(f"{method} {url} params={kwargs.get('params')}")
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"unable to execute http {method} request: {e}") from e

    def post(self, url, payload):
        return self._request("POST", url, json=payload)

    def get(self, url, params=None):
        return self._request("GET", url, params=params)

    def delete(self, url):
        return self._request("DELETE", url)

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
