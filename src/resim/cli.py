"""ReSim CLI: create and query ReSim projects, branches, builds and logs from CI or the terminal."""

from __future__ import annotations

from functools import partial
import logging
from pathlib import Path
import signal
import sys

import click
import httpx

from .auth import BearerAuth, ReuseTokenSource, build_token_source
from .client import BffClient, ReSimClient, ReSimError
from .config import Settings, resolve_settings
from .credentials import CredentialCache
from .formatters import format_ci, format_created, format_json, format_metrics_sync
from .metrics import collect_metrics_files
from .resolve import (
    check_branch_id,
    list_all,
    resolve_batch_id,
    resolve_branch_id,
    resolve_project_id,
    resolve_system_id,
    resolve_test_suite_id,
)
from .utils import default_branch_type, parse_uuid, require, validate_branch_type, validate_image_uri

logger = logging.getLogger(__name__)

# Transport for every httpx client the CLI builds; None means the real network.
HTTP_TRANSPORT: httpx.BaseTransport | None = None


class Session:
    """API access for a single command, built on first use.

    Commands that fail validation never touch the credential cache or the
    network. On close, the last token handed out is written back to the cache
    so the next invocation starts warm.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.cache: CredentialCache | None = None
        self.source: ReuseTokenSource | None = None
        self._auth: BearerAuth | None = None
        self._token_http: httpx.Client | None = None
        self._client: ReSimClient | None = None
        self._bff: BffClient | None = None

    def _bearer(self) -> BearerAuth:
        if self._auth is None:
            auth_config = self.settings.auth_config()
            self.cache = CredentialCache()
            self.cache.load()
            self._token_http = httpx.Client(timeout=self.settings.timeout, transport=HTTP_TRANSPORT)
            self.source = build_token_source(auth_config, self.cache, self._token_http)
            self._auth = BearerAuth(self.source)
        return self._auth

    @property
    def client(self) -> ReSimClient:
        if self._client is None:
            self._client = ReSimClient(
                self.settings.url,
                auth=self._bearer(),
                timeout=self.settings.timeout,
                transport=HTTP_TRANSPORT,
            )
        return self._client

    @property
    def bff(self) -> BffClient:
        if self._bff is None:
            self._bff = BffClient(
                self.settings.bff_url,
                auth=self._bearer(),
                timeout=self.settings.timeout,
                transport=HTTP_TRANSPORT,
            )
        return self._bff

    def close(self) -> None:
        if self.source is not None and self.source.last_token is not None:
            self.cache.save(self.settings.client_id, self.source.last_token)
        for http in (self._client, self._bff, self._token_http):
            if http is not None:
                http.close()


def _interrupt_on_sigterm(signum, frame):
    raise KeyboardInterrupt


def _get_client(ctx: click.Context) -> ReSimClient:
    return ctx.obj["session"].client


def _exit_code_for_error(err: ReSimError) -> int:
    """Map failures to deterministic process exit codes."""
    if err.code in {"VALIDATION", "CONFIG"}:
        return 2
    if err.code == "AUTH" or err.status_code in {401, 403}:
        return 10
    if err.code in {"TIMEOUT", "NETWORK"}:
        return 13
    if err.code == "NOT_FOUND" or err.status_code == 404:
        return 12
    if err.status_code >= 500:
        return 15
    return 16


def _exit_with_error(err: ReSimError) -> None:
    click.echo(f"Error: {err.message}", err=True)
    sys.exit(_exit_code_for_error(err))


def _say(github: bool, text: str) -> None:
    """Progress chatter, suppressed in CI mode."""
    if not github:
        click.echo(text)


def _emit_created(
    github: bool,
    ci_pairs: dict[str, object],
    entity: str,
    fields: list[tuple[str, object]],
    footer: str | None = None,
) -> None:
    if github:
        click.echo(format_ci(ci_pairs), nl=False)
    else:
        click.echo(format_created(entity, fields, footer))


def _require_field(payload: dict, key: str, what: str) -> str:
    value = payload.get(key)
    if not value:
        raise ReSimError("INVALID_RESPONSE", f"empty {what} in response", 0)
    return value


github_option = click.option(
    "--github",
    is_flag=True,
    default=False,
    help="Output in GitHub Actions friendly key=value format.",
)
project_option = click.option(
    "--project",
    "--project-id",
    "--project_id",
    "--project-name",
    "project",
    required=True,
    help="The name or ID of the project.",
)


@click.group()
@click.option("--url", default=None, help="The URL of the API (or set RESIM_URL).")
@click.option("--auth-url", default=None, help="The URL of the authentication endpoint (or set RESIM_AUTH_URL).")
@click.option("--client-id", default=None, help="Authentication credentials client ID (or set RESIM_CLIENT_ID).")
@click.option(
    "--client-secret",
    default=None,
    help="Authentication credentials client secret (or set RESIM_CLIENT_SECRET).",
)
@click.option("--bff-url", default=None, help="The URL of the ReSim GraphQL backend used by metrics sync.")
@click.option("--timeout", default=None, type=float, help="HTTP request timeout in seconds.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log diagnostics to stderr.")
@click.pass_context
def main(
    ctx,
    url: str | None,
    auth_url: str | None,
    client_id: str | None,
    client_secret: str | None,
    bff_url: str | None,
    timeout: float | None,
    verbose: bool,
):
    """Command Line Interface for ReSim."""
    ctx.ensure_object(dict)
    # SIGTERM aborts like Ctrl-C: the context still closes and the cache is saved.
    signal.signal(signal.SIGTERM, _interrupt_on_sigterm)
    try:
        settings = resolve_settings(
            url=url,
            auth_url=auth_url,
            client_id=client_id,
            client_secret=client_secret,
            bff_url=bff_url,
            timeout=timeout,
            verbose=verbose or None,
        )
    except ReSimError as e:
        _exit_with_error(e)

    if settings.verbose:
        logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)
        logging.getLogger("resim").setLevel(logging.DEBUG)
    logger.debug("Using API %s, auth %s, timeout %ss", settings.url, settings.auth_url, settings.timeout)

    session = Session(settings)
    ctx.obj["settings"] = settings
    ctx.obj["session"] = session
    ctx.call_on_close(session.close)


# ---------------------------------------------------------------------------
# projects
# ---------------------------------------------------------------------------


@main.group(name="projects")
def projects():
    """Create and manage projects."""


@projects.command(name="create")
@click.option("--name", required=True, help="The name of the project, often a repository name.")
@click.option("--description", required=True, help="The description of the project.")
@github_option
@click.pass_context
def project_create(ctx, name, description, github):
    """Create a new project."""
    _say(github, "Creating a project...")
    try:
        require(name, "empty project name")
        require(description, "empty project description")
        project = _get_client(ctx).create_project(name, description)
        project_id = _require_field(project, "projectID", "project ID")
        _emit_created(github, {"project_id": project_id}, "project", [("Project ID", project_id)])
    except ReSimError as e:
        _exit_with_error(e)


@projects.command(name="list")
@click.pass_context
def project_list(ctx):
    """List all projects."""
    try:
        client = _get_client(ctx)
        click.echo(format_json(list_all(client.list_projects, "projects")))
    except ReSimError as e:
        _exit_with_error(e)


@projects.command(name="get")
@project_option
@click.pass_context
def project_get(ctx, project):
    """Get details about a project."""
    try:
        require(project, "empty project name or ID")
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        click.echo(format_json(client.get_project(project_id)))
    except ReSimError as e:
        _exit_with_error(e)


@projects.command(name="delete")
@project_option
@click.pass_context
def project_delete(ctx, project):
    """Delete a project."""
    try:
        require(project, "empty project name or ID")
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        client.delete_project(project_id)
        click.echo("Deleted project successfully!")
    except ReSimError as e:
        _exit_with_error(e)


# ---------------------------------------------------------------------------
# branches
# ---------------------------------------------------------------------------


@main.group(name="branches")
def branches():
    """Create and manage branches."""


@branches.command(name="create")
@project_option
@click.option("--name", required=True, help="The name of the branch, often a git branch name.")
@click.option("--type", "branch_type", required=True, help="The type of the branch: RELEASE, MAIN or CHANGE_REQUEST.")
@github_option
@click.pass_context
def branch_create(ctx, project, name, branch_type, github):
    """Create a new branch."""
    _say(github, "Creating a branch...")
    try:
        require(project, "empty project name or ID")
        require(name, "empty branch name")
        validate_branch_type(branch_type)
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        branch = client.create_branch(project_id, name, branch_type)
        branch_id = _require_field(branch, "branchID", "branch ID")
        _emit_created(github, {"branch_id": branch_id}, "branch", [("Branch ID", branch_id)])
    except ReSimError as e:
        _exit_with_error(e)


@branches.command(name="list")
@project_option
@click.pass_context
def branch_list(ctx, project):
    """List the branches of a project."""
    try:
        require(project, "empty project name or ID")
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        click.echo(format_json(list_all(partial(client.list_branches, project_id), "branches")))
    except ReSimError as e:
        _exit_with_error(e)


# ---------------------------------------------------------------------------
# systems
# ---------------------------------------------------------------------------


@main.group(name="systems")
def systems():
    """Inspect systems."""


@systems.command(name="list")
@project_option
@click.pass_context
def system_list(ctx, project):
    """List the systems of a project."""
    try:
        require(project, "empty project name or ID")
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        click.echo(format_json(list_all(partial(client.list_systems, project_id), "systems")))
    except ReSimError as e:
        _exit_with_error(e)


# ---------------------------------------------------------------------------
# builds
# ---------------------------------------------------------------------------


@main.group(name="builds")
def builds():
    """Create and list builds."""


@builds.command(name="create")
@project_option
@click.option("--branch", required=True, help="The name or ID of the branch, usually the associated git branch.")
@click.option("--system", required=True, help="The name or ID of the system the build is an instance of.")
@click.option("--image", required=True, help="The URI of the docker image, including tag or digest.")
@click.option("--version", "build_version", required=True, help="The version of the build image, usually a commit ID.")
@click.option("--description", required=True, help="The description of the build, often a commit message.")
@click.option("--auto-create-branch", is_flag=True, default=False, help="Create the branch if it does not exist.")
@github_option
@click.pass_context
def build_create(ctx, project, branch, system, image, build_version, description, auto_create_branch, github):
    """Create a new build."""
    _say(github, "Creating a build...")
    try:
        require(project, "empty project name or ID")
        require(branch, "empty branch name or ID")
        require(system, "empty system name or ID")
        require(description, "empty build description")
        require(build_version, "empty build version")
        require(image, "empty build image URI")
        validate_image_uri(image)

        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        branch_id = check_branch_id(client, project_id, branch)
        system_id = resolve_system_id(client, project_id, system)
        if branch_id is None:
            if not auto_create_branch:
                raise ReSimError(
                    "NOT_FOUND",
                    f"branch {branch} does not exist, and auto-create-branch is false, so not creating branch",
                    0,
                )
            _say(github, f"Branch with name {branch} doesn't currently exist. Creating...")
            created = client.create_branch(project_id, branch, default_branch_type(branch))
            branch_id = _require_field(created, "branchID", "branch ID")
            _say(github, f"Created branch with ID {branch_id}")

        build = client.create_build(
            project_id,
            branch_id,
            system_id=system_id,
            image_uri=image,
            version=build_version,
            description=description,
        )
        build_id = _require_field(build, "buildID", "build ID")
        _emit_created(github, {"build_id": build_id}, "build", [("Build ID", build_id)])
    except ReSimError as e:
        _exit_with_error(e)


@builds.command(name="list")
@project_option
@click.option("--branch", default=None, help="Only list builds on this branch (name or ID).")
@click.option("--system", default=None, help="Only list builds of this system (name or ID).")
@click.pass_context
def build_list(ctx, project, branch, system):
    """List builds, optionally filtered by branch or system."""
    try:
        require(project, "empty project name or ID")
        if branch is not None:
            require(branch, "empty branch name or ID")
        if system is not None:
            require(system, "empty system name or ID")
        if branch and system:
            raise ReSimError("VALIDATION", "filter builds by --branch or --system, not both", 0)
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        if branch:
            branch_id = resolve_branch_id(client, project_id, branch)
            list_call = partial(client.list_builds_for_branch, project_id, branch_id)
        elif system:
            system_id = resolve_system_id(client, project_id, system)
            list_call = partial(client.list_builds_for_system, project_id, system_id)
        else:
            list_call = partial(client.list_builds, project_id)
        click.echo(format_json(list_all(list_call, "builds")))
    except ReSimError as e:
        _exit_with_error(e)


# ---------------------------------------------------------------------------
# test suites
# ---------------------------------------------------------------------------


@main.group(name="test-suites")
def test_suites():
    """Inspect test suites."""


@test_suites.command(name="list")
@project_option
@click.pass_context
def test_suite_list(ctx, project):
    """List the test suites of a project."""
    try:
        require(project, "empty project name or ID")
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        click.echo(format_json(list_all(partial(client.list_test_suites, project_id), "testSuites")))
    except ReSimError as e:
        _exit_with_error(e)


@test_suites.command(name="get")
@project_option
@click.option("--test-suite", "--suite", "test_suite", required=True, help="The name or ID of the test suite.")
@click.pass_context
def test_suite_get(ctx, project, test_suite):
    """Get details about a test suite."""
    try:
        require(project, "empty project name or ID")
        require(test_suite, "empty test suite name or ID")
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        test_suite_id = resolve_test_suite_id(client, project_id, test_suite)
        click.echo(format_json(client.get_test_suite(project_id, test_suite_id)))
    except ReSimError as e:
        _exit_with_error(e)


# ---------------------------------------------------------------------------
# batches
# ---------------------------------------------------------------------------


@main.group(name="batches")
def batches():
    """Inspect batches."""


@batches.command(name="get")
@project_option
@click.option("--batch-id", "--batch_id", "batch_id", default=None, help="The ID of the batch.")
@click.option("--batch-name", default=None, help="The friendly name of the batch.")
@click.pass_context
def batch_get(ctx, project, batch_id, batch_name):
    """Get details about a batch."""
    try:
        require(project, "empty project name or ID")
        if bool(batch_id) == bool(batch_name):
            raise ReSimError("VALIDATION", "pass exactly one of --batch-id or --batch-name", 0)
        if batch_id:
            batch_id = parse_uuid(batch_id, "batch ID")
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        if batch_name:
            batch_id = resolve_batch_id(client, project_id, batch_name)
        click.echo(format_json(client.get_batch(project_id, batch_id)))
    except ReSimError as e:
        _exit_with_error(e)


# ---------------------------------------------------------------------------
# logs
# ---------------------------------------------------------------------------


@main.group(name="logs")
def logs():
    """Create and list test logs."""


@logs.command(name="create")
@project_option
@click.option("--batch-id", "--batch_id", "batch_id", required=True, help="The ID of the batch the log belongs to.")
@click.option(
    "--test-id",
    "--job-id",
    "--job_id",
    "test_id",
    required=True,
    help="The ID of the test in the batch that created the log.",
)
@click.option("--name", required=True, help="The simple name of the log file to register (not a directory).")
@click.option("--file-size", "--file_size", "file_size", required=True, type=int, help="The size of the file in bytes.")
@click.option("--checksum", default="", help="A checksum for the file, to enable integrity checking on download.")
@github_option
@click.pass_context
def log_create(ctx, project, batch_id, test_id, name, file_size, checksum, github):
    """Register a log file for a test. Intended for CI/CD systems."""
    _say(github, "Creating a log entry...")
    try:
        require(project, "empty project name or ID")
        require(name, "empty log filename")
        batch_id = parse_uuid(batch_id, "batch ID")
        test_id = parse_uuid(test_id, "test ID")
        if file_size < 0:
            raise ReSimError("VALIDATION", "file size must be a non-negative number of bytes", 0)
        if not checksum:
            _say(github, "No checksum was provided, integrity checking will not be possible")

        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        client.get_job(project_id, batch_id, test_id)
        created = client.create_log(
            project_id,
            batch_id,
            test_id,
            file_name=name,
            file_size=file_size,
            checksum=checksum,
        )
        location = _require_field(created, "location", "log location")
        _emit_created(
            github,
            {"log_location": location},
            "log",
            [("Log ID", created.get("logID", "")), ("Output Location", location)],
            footer="Please upload the log file to this location",
        )
    except ReSimError as e:
        _exit_with_error(e)


@logs.command(name="list")
@project_option
@click.option("--batch-id", "--batch_id", "batch_id", required=True, help="The ID of the batch the logs belong to.")
@click.option("--test-id", "--job-id", "--job_id", "test_id", default=None, help="List only the logs of this test.")
@click.pass_context
def log_list(ctx, project, batch_id, test_id):
    """List the logs of a batch or of one test in it."""
    try:
        require(project, "empty project name or ID")
        batch_id = parse_uuid(batch_id, "batch ID")
        if test_id:
            test_id = parse_uuid(test_id, "test ID")
        client = _get_client(ctx)
        project_id = resolve_project_id(client, project)
        if test_id:
            list_call = partial(client.list_job_logs, project_id, batch_id, test_id)
        else:
            list_call = partial(client.list_batch_logs, project_id, batch_id)
        click.echo(format_json(list_all(list_call, "logs")))
    except ReSimError as e:
        _exit_with_error(e)


# ---------------------------------------------------------------------------
# metrics
# ---------------------------------------------------------------------------


@main.group(name="metrics")
def metrics():
    """Manage your metrics configuration."""


@metrics.command(name="sync")
@project_option
@click.option("--branch", default=None, help="Sync the configuration for this branch only.")
@click.pass_context
def metrics_sync(ctx, project, branch):
    """Sync .resim/metrics config and templates with ReSim."""
    try:
        require(project, "empty project name or ID")
        if branch is not None:
            require(branch, "empty branch name")
        files = collect_metrics_files(Path.cwd())
        session = ctx.obj["session"]
        project_id = resolve_project_id(session.client, project)
        session.bff.update_metrics_config(project_id, files.config, files.templates, branch=branch)
        click.echo(format_metrics_sync(files.template_names))
    except ReSimError as e:
        _exit_with_error(e)


_ALIASES = {
    "project": projects,
    "branch": branches,
    "system": systems,
    "build": builds,
    "suites": test_suites,
    "batch": batches,
    "log": logs,
}
for _alias, _group in _ALIASES.items():
    main.add_command(_group, name=_alias)


if __name__ == "__main__":
    main()
