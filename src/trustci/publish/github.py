# publish/github.py
from __future__ import annotations

import http.client
import json
import urllib.error
import urllib.request
from pathlib import Path
from typing import Optional, Sequence
from urllib.parse import quote

from ..errors import PublishError
from ..release import UploadReport
from ..settings import DEFAULT_API_URL, DEFAULT_UPLOADS_URL


class GitHubReleases:
    """
    `releases` provider: uploads files to the GitHub release for a tag.

    The release is created when it does not exist yet. Assets already
    present on the release are skipped, never deleted or replaced.
    """

    def __init__(
        self,
        repo: str,
        *,
        api_url: str = DEFAULT_API_URL,
        uploads_url: str = DEFAULT_UPLOADS_URL,
        timeout: float = 60.0,
    ):
        if not repo or "/" not in repo:
            raise PublishError("", f"release repo must be 'owner/name', got {repo!r}")
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.uploads_url = uploads_url.rstrip("/")
        self.timeout = timeout

    def _request(
        self,
        method: str,
        url: str,
        credential: str,
        *,
        data: Optional[bytes] = None,
        content_type: str = "application/json",
    ) -> dict:
        """
        Make an HTTP request to the API.

        Returns:
            Parsed JSON response as dictionary

        Raises:
            urllib.error.HTTPError: passed through so callers can react to 404/422
            PublishError: network errors or a non-JSON body
        """
        req_headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"token {credential}",
            "Content-Type": content_type,
            "User-Agent": "trustci",
        }
        req = urllib.request.Request(url, data=data, headers=req_headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError:
            # HTTPError subclasses URLError; status codes are the caller's decision
            raise
        except urllib.error.URLError as e:
            raise PublishError("", f"Network error: {e.reason}", url=url) from e
        except (http.client.HTTPException, OSError) as e:
            # truncated bodies, bad status lines, resets mid-read
            raise PublishError("", f"Connection error: {type(e).__name__}: {e}", url=url) from e

        try:
            body = raw.decode("utf-8")
            return json.loads(body) if body else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PublishError("", f"Invalid JSON response: {e}", url=url) from e

    def _http_error(self, e: urllib.error.HTTPError, what: str) -> PublishError:
        body = e.read().decode("utf-8", "replace") if e.fp else ""
        return PublishError("", f"{what} failed: {e.code} {e.reason}", body=body[:500])

    def get_or_create_release(self, credential: str, tag: str) -> dict:
        base = f"{self.api_url}/repos/{self.repo}/releases"
        try:
            return self._request("GET", f"{base}/tags/{quote(tag, safe='')}", credential)
        except urllib.error.HTTPError as e:
            if e.code != 404:
                raise self._http_error(e, f"looking up release {tag}") from e

        payload = json.dumps({"tag_name": tag, "name": tag}).encode("utf-8")
        try:
            return self._request("POST", base, credential, data=payload)
        except urllib.error.HTTPError as e:
            raise self._http_error(e, f"creating release {tag}") from e

    def upload(self, credential: str, pattern: str, tag: str, files: Sequence[Path]) -> UploadReport:
        release = self.get_or_create_release(credential, tag)
        release_id = release.get("id")
        if release_id is None:
            raise PublishError("", f"release for {tag} has no id", pattern=pattern)

        existing = {a.get("name") for a in release.get("assets", []) or []}
        report = UploadReport()
        for path in files:
            name = path.name
            if name in existing:
                report.skipped.append(name)
                continue
            url = f"{self.uploads_url}/repos/{self.repo}/releases/{release_id}/assets?name={quote(name)}"
            try:
                self._request(
                    "POST",
                    url,
                    credential,
                    data=path.read_bytes(),
                    content_type="application/octet-stream",
                )
            except urllib.error.HTTPError as e:
                # 422: an asset with this name appeared since we listed them
                if e.code == 422:
                    report.skipped.append(name)
                    continue
                raise self._http_error(e, f"uploading {name}") from e
            report.uploaded.append(name)
        return report
