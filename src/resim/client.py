"""ReSim API client."""

import httpx


class ReSimError(Exception):
    """API error with code and message."""

    def __init__(self, code: str, message: str, status_code: int = 0):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(f"{code}: {message}")


def check_response(
    expected_status: int,
    message: str,
    response: httpx.Response | None,
    error: Exception | None = None,
) -> None:
    """Fail unless the request succeeded with exactly ``expected_status``.

    The server body is included verbatim in the error so the user sees the
    reason the API gave.
    """
    if error is not None:
        code = "TIMEOUT" if isinstance(error, httpx.TimeoutException) else "NETWORK"
        raise ReSimError(code, f"{message}: {error}", 0) from error
    if response is None:
        raise ReSimError("EMPTY_RESPONSE", f"{message}: no response", 0)
    if response.status_code != expected_status:
        body = response.read().decode("utf-8", errors="replace")
        raise ReSimError(
            "HTTP",
            f"{message}: expected status code: {expected_status} received: {response.status_code}"
            f" status: {response.reason_phrase} message: {body}",
            response.status_code,
        )


class ReSimClient:
    """Thin wrapper around the ReSim REST API.

    Authentication is delegated to ``auth`` (an ``httpx.Auth``); the client
    itself only knows paths, parameters and expected status codes.
    """

    def __init__(
        self,
        base_url: str = "https://api.resim.ai/v1/",
        auth: httpx.Auth | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=base_url,
            auth=auth,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def _request(
        self,
        method: str,
        path: str,
        expected_status: int,
        message: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict | None:
        # Strip None params
        if params is not None:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            resp = self._client.request(method, path, json=json, params=params)
        except httpx.RequestError as exc:
            check_response(expected_status, message, None, exc)
        check_response(expected_status, message, resp)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            raise ReSimError("INVALID_RESPONSE", f"{message}: {resp.text[:200]}", resp.status_code)

    def _get_payload(self, path: str, message: str, **params) -> dict:
        data = self._request("GET", path, 200, message, params=params)
        if data is None:
            raise ReSimError("EMPTY_RESPONSE", f"{message}: empty response", 200)
        return data

    def _created(self, path: str, message: str, body: dict) -> dict:
        data = self._request("POST", path, 201, message, json=body)
        if data is None:
            raise ReSimError("EMPTY_RESPONSE", f"{message}: empty response", 201)
        return data

    def _exists(self, path: str) -> bool:
        """True when a GET on ``path`` answers 200; any other outcome is False."""
        try:
            resp = self._client.get(path)
        except httpx.RequestError:
            return False
        return resp.status_code == 200

    # Projects

    def create_project(self, name: str, description: str) -> dict:
        return self._created("projects", "failed to create project", {"name": name, "description": description})

    def list_projects(self, page_size: int = 100, page_token: str | None = None) -> dict:
        return self._get_payload(
            "projects",
            "failed to list projects",
            pageSize=page_size,
            pageToken=page_token,
            orderBy="timestamp",
        )

    def get_project(self, project_id: str) -> dict:
        return self._get_payload(f"projects/{project_id}", "unable to retrieve project")

    def project_exists(self, project_id: str) -> bool:
        return self._exists(f"projects/{project_id}")

    def delete_project(self, project_id: str) -> None:
        self._request("DELETE", f"projects/{project_id}", 204, "unable to delete project")

    # Branches

    def create_branch(self, project_id: str, name: str, branch_type: str) -> dict:
        return self._created(
            f"projects/{project_id}/branches",
            f"failed to create a new branch with name {name}",
            {"name": name, "branchType": branch_type},
        )

    def list_branches(self, project_id: str, page_size: int = 100, page_token: str | None = None) -> dict:
        return self._get_payload(
            f"projects/{project_id}/branches",
            "failed to list branches",
            pageSize=page_size,
            pageToken=page_token,
            orderBy="timestamp",
        )

    def branch_exists(self, project_id: str, branch_id: str) -> bool:
        return self._exists(f"projects/{project_id}/branches/{branch_id}")

    # Systems

    def list_systems(self, project_id: str, page_size: int = 100, page_token: str | None = None) -> dict:
        return self._get_payload(
            f"projects/{project_id}/systems",
            "failed to list systems",
            pageSize=page_size,
            pageToken=page_token,
        )

    def system_exists(self, project_id: str, system_id: str) -> bool:
        return self._exists(f"projects/{project_id}/systems/{system_id}")

    # Builds

    def create_build(
        self,
        project_id: str,
        branch_id: str,
        *,
        system_id: str,
        image_uri: str,
        version: str,
        description: str,
    ) -> dict:
        return self._created(
            f"projects/{project_id}/branches/{branch_id}/builds",
            "unable to create build",
            {
                "description": description,
                "imageUri": image_uri,
                "version": version,
                "systemID": system_id,
            },
        )

    def list_builds(self, project_id: str, page_size: int = 100, page_token: str | None = None) -> dict:
        return self._get_payload(
            f"projects/{project_id}/builds",
            "failed to list builds",
            pageSize=page_size,
            pageToken=page_token,
            orderBy="timestamp",
        )

    def list_builds_for_branch(
        self, project_id: str, branch_id: str, page_size: int = 100, page_token: str | None = None
    ) -> dict:
        return self._get_payload(
            f"projects/{project_id}/branches/{branch_id}/builds",
            "failed to list builds for branch",
            pageSize=page_size,
            pageToken=page_token,
            orderBy="timestamp",
        )

    def list_builds_for_system(
        self, project_id: str, system_id: str, page_size: int = 100, page_token: str | None = None
    ) -> dict:
        return self._get_payload(
            f"projects/{project_id}/systems/{system_id}/builds",
            "failed to list builds for system",
            pageSize=page_size,
            pageToken=page_token,
            orderBy="timestamp",
        )

    # Test suites

    def list_test_suites(self, project_id: str, page_size: int = 100, page_token: str | None = None) -> dict:
        return self._get_payload(
            f"projects/{project_id}/suites",
            "failed to list test suites",
            pageSize=page_size,
            pageToken=page_token,
        )

    def get_test_suite(self, project_id: str, test_suite_id: str) -> dict:
        return self._get_payload(f"projects/{project_id}/suites/{test_suite_id}", "unable to retrieve test suite")

    def test_suite_exists(self, project_id: str, test_suite_id: str) -> bool:
        return self._exists(f"projects/{project_id}/suites/{test_suite_id}")

    # Batches and jobs

    def list_batches(self, project_id: str, page_size: int = 100, page_token: str | None = None) -> dict:
        return self._get_payload(
            f"projects/{project_id}/batches",
            "failed to list batches",
            pageSize=page_size,
            pageToken=page_token,
            orderBy="timestamp",
        )

    def get_batch(self, project_id: str, batch_id: str) -> dict:
        return self._get_payload(f"projects/{project_id}/batches/{batch_id}", "unable to retrieve batch")

    def batch_exists(self, project_id: str, batch_id: str) -> bool:
        return self._exists(f"projects/{project_id}/batches/{batch_id}")

    def get_job(self, project_id: str, batch_id: str, job_id: str) -> dict:
        return self._get_payload(f"projects/{project_id}/batches/{batch_id}/jobs/{job_id}", "unable to retrieve test")

    # Logs

    def create_log(
        self,
        project_id: str,
        batch_id: str,
        job_id: str,
        *,
        file_name: str,
        file_size: int,
        checksum: str,
    ) -> dict:
        return self._created(
            f"projects/{project_id}/batches/{batch_id}/jobs/{job_id}/logs",
            "unable to create log",
            {"fileName": file_name, "fileSize": file_size, "checksum": checksum},
        )

    def list_batch_logs(
        self, project_id: str, batch_id: str, page_size: int = 100, page_token: str | None = None
    ) -> dict:
        return self._get_payload(
            f"projects/{project_id}/batches/{batch_id}/logs",
            "unable to list logs",
            pageSize=page_size,
            pageToken=page_token,
        )

    def list_job_logs(
        self,
        project_id: str,
        batch_id: str,
        job_id: str,
        page_size: int = 100,
        page_token: str | None = None,
    ) -> dict:
        return self._get_payload(
            f"projects/{project_id}/batches/{batch_id}/jobs/{job_id}/logs",
            "unable to list logs",
            pageSize=page_size,
            pageToken=page_token,
        )

    def close(self):
        self._client.close()


class BffClient:
    """GraphQL client for the ReSim backend-for-frontend."""

    _UPDATE_METRICS_CONFIG = """
        mutation UpdateMetricsConfig($projectId: String!, $branch: String, $config: String!, $templateFiles: [MetricsTemplate!]!) {
            updateMetricsConfig(projectId: $projectId, branch: $branch, config: $config, templateFiles: $templateFiles)
        }
    """

    def __init__(
        self,
        url: str = "https://bff.resim.ai/graphql",
        auth: httpx.Auth | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url
        self._client = httpx.Client(auth=auth, timeout=timeout, follow_redirects=True, transport=transport)

    def _execute(self, query: str, variables: dict, message: str) -> dict:
        try:
            resp = self._client.post(self.url, json={"query": query, "variables": variables})
        except httpx.RequestError as exc:
            check_response(200, message, None, exc)
        check_response(200, message, resp)

        try:
            data = resp.json()
        except ValueError:
            raise ReSimError("INVALID_RESPONSE", f"{message}: {resp.text[:200]}", resp.status_code)
        errors = data.get("errors")
        if errors:
            details = "; ".join(str(err.get("message", err)) for err in errors)
            raise ReSimError("GRAPHQL", f"{message}: {details}", resp.status_code)
        return data.get("data") or {}

    def update_metrics_config(
        self,
        project_id: str,
        config: str,
        templates: list[dict],
        branch: str | None = None,
    ) -> dict:
        return self._execute(
            self._UPDATE_METRICS_CONFIG,
            {
                "projectId": project_id,
                "branch": branch,
                "config": config,
                "templateFiles": templates,
            },
            "failed to sync metrics config",
        )

    def close(self):
        self._client.close()
