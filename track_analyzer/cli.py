"""
Command-line interface for track-analyzer.

Commands:
    track-analyzer login [--no-browser]           Authorize this machine
    track-analyzer analyze LINK [--export] [--basic] [-o DIR]
                                                  Analyze one track
    track-analyzer status                         Show the session state
    track-analyzer logout                         Forget the stored session

Usage:
    # First run: authorize, then analyze
    track-analyzer login
    track-analyzer analyze "https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC"

    # Analyze and write "<artist> - <title> - Info.txt"
    track-analyzer analyze spotify:track:4uLU6hMCjMI75M1A2tKUQC --export

Configuration:
    config.yaml in the current directory (or --config PATH) plus the
    TRACK_ANALYZER_* environment variables, which may come from a .env file.
    Only the client id is required.

Exit Codes:
    0    success
    1    configuration, storage or unexpected error
    2    invalid link
    3    login required and not completed
    4    session expired
    5    superseded
    6    unauthorized
    7    request rejected by the music service
    8    network failure
    130  interrupted
"""

import asyncio
import functools
import sys
import webbrowser
from pathlib import Path

import aiohttp
import click

from track_analyzer import __version__
from track_analyzer.analysis import AnalysisOrchestrator, summarize, write_export
from track_analyzer.analysis.descriptors import format_duration
from track_analyzer.core import (
    AnalysisError,
    AuthenticationRequiredError,
    Config,
    FailureKind,
    FileSessionStore,
    TrackAnalyzerError,
    get_logger,
    load_config,
    mask_secret,
    setup_logging,
    shutdown_logging,
)
from track_analyzer.spotify import (
    AnalyzedTrack,
    AuthState,
    Credential,
    LinkResolver,
    PKCEAuthenticator,
    TrackDataClient,
    is_loopback_redirect,
    strip_callback_params,
    wait_for_callback,
)

logger = get_logger(__name__)


EXIT_GENERAL_ERROR = 1
EXIT_INTERRUPTED = 130

EXIT_CODES = {
    FailureKind.INVALID_LINK: 2,
    FailureKind.AUTHENTICATION_REQUIRED: 3,
    FailureKind.SESSION_EXPIRED: 4,
    FailureKind.SUPERSEDED: 5,
    FailureKind.UNAUTHORIZED: 6,
    FailureKind.UPSTREAM_REJECTED: 7,
    FailureKind.TRANSPORT: 8,
}


def handle_error(func):
    """
    Decorator mapping errors to messages and exit codes.

    Analysis failures print their category message and exit with the
    category's code; the specific cause goes to the log.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg="yellow"), err=True)
            sys.exit(EXIT_INTERRUPTED)
        except AnalysisError as e:
            logger.debug(f"{type(e).__name__}: {e.message} {e.details}")
            click.echo(click.style(e.user_message, fg="red"), err=True)
            if e.kind is FailureKind.UPSTREAM_REJECTED or e.kind is FailureKind.TRANSPORT:
                click.echo(f"   Details: {e.message}", err=True)
            sys.exit(EXIT_CODES.get(e.kind, EXIT_GENERAL_ERROR))
        except TrackAnalyzerError as e:
            logger.debug(f"{type(e).__name__}: {e.message} {e.details}")
            click.echo(click.style(f"Error: {e}", fg="red"), err=True)
            sys.exit(EXIT_GENERAL_ERROR)
        except Exception as e:
            logger.exception(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg="red"), err=True)
            sys.exit(EXIT_GENERAL_ERROR)
    return wrapper


def _get_config(ctx: click.Context) -> Config:
    """Load the configuration and start logging on first use."""
    if "config" not in ctx.obj:
        config = load_config(ctx.obj.get("config_path"))
        level = "DEBUG" if ctx.obj.get("verbose") else "INFO"
        log_file = setup_logging(config.output.logs_directory, level=level)
        ctx.call_on_close(shutdown_logging)
        logger.debug(f"Logging to {log_file}")
        ctx.obj["config"] = config
    return ctx.obj["config"]


def _build_authenticator(
    config: Config,
    http_session: aiohttp.ClientSession | None = None
) -> PKCEAuthenticator:
    store = FileSessionStore(config.output.session_file)
    authenticator = PKCEAuthenticator(
        config.auth,
        store,
        http_session=http_session,
        timeout=config.api.timeout,
    )
    authenticator.restore_session()
    return authenticator


def _read_pasted_callback(redirect_uri: str) -> str:
    click.echo("\n" + "=" * 80)
    click.echo("MANUAL AUTHORIZATION:")
    click.echo("1. Complete authorization in the browser")
    click.echo(f"2. You will be redirected to {redirect_uri}")
    click.echo("3. Copy the full address from the browser's address bar")
    click.echo("4. Paste it below")
    click.echo("=" * 80 + "\n")

    pasted = click.prompt("Redirect URL").strip()
    logger.debug(f"Received redirect: {strip_callback_params(pasted)}")
    # A bare authorization code is accepted as well
    if "=" not in pasted:
        return f"code={pasted}"
    return pasted


async def _run_login(
    authenticator: PKCEAuthenticator,
    config: Config,
    open_browser: bool,
    authorization_url: str | None = None
) -> Credential:
    """
    Drive both login phases: consent in the browser, then the code exchange.

    Reuses authorization_url when a login was already started (its verifier
    is in the session store).
    """
    if authorization_url is None or not authenticator.has_pending_login:
        authorization_url = authenticator.begin_login()

    if open_browser:
        click.echo("Opening browser for authorization...")
        webbrowser.open(authorization_url)
    click.echo(f"If the browser doesn't open, visit:\n   {authorization_url}")

    if is_loopback_redirect(config.auth.redirect_uri):
        click.echo("Waiting for authorization callback...")
        callback = await wait_for_callback(config.auth.redirect_uri)
    else:
        callback = _read_pasted_callback(config.auth.redirect_uri)

    credential = await authenticator.complete_login(callback)
    click.echo(click.style("Successfully authenticated", fg="green"))
    return credential


def print_track_card(track: AnalyzedTrack, web_url: str) -> None:
    """Print the analyzed track to stdout."""
    click.echo()
    click.echo(click.style(track.title, fg="green", bold=True))
    click.echo(f"   {track.all_artists}")
    click.echo()
    click.echo(f"   Album: {track.album}")
    if track.release_date:
        click.echo(f"   Released: {track.release_date}")
    click.echo(f"   Duration: {format_duration(track.duration_ms)}")
    click.echo(f"   Popularity: {track.popularity}/100")
    if track.explicit:
        click.echo("   Explicit: Yes")
    click.echo()

    for label, value in summarize(track).items():
        click.echo(f"   {label}: {value}")

    click.echo()
    click.echo(f"   Link: {track.track_url(web_url)}")
    if track.artwork_url:
        click.echo(f"   Artwork: {track.artwork_url}")
    if track.preview_url:
        click.echo(f"   Preview: {track.preview_url}")


# =============================================================================
# Commands
# =============================================================================

@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug output")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config file (default: ./config.yaml)"
)
@click.pass_context
def cli(ctx, version, verbose, config_path):
    """
    track-analyzer - Key, tempo and mood for any track

    Paste a track link and get its musical attributes and metadata.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path

    if version:
        click.echo(f"track-analyzer v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--no-browser", is_flag=True, help="Print the authorization URL instead of opening it")
@click.pass_context
@handle_error
def login(ctx, no_browser):
    """
    Authorize track-analyzer with your account

    Opens the consent page, waits for the redirect and stores the
    resulting token in the session file.
    """
    config = _get_config(ctx)

    async def _login() -> None:
        authenticator = _build_authenticator(config)
        credential = authenticator.current_credential()
        if credential is not None and not credential.is_expired():
            click.echo("Already authenticated. Run 'track-analyzer logout' to switch accounts.")
            return
        await _run_login(authenticator, config, open_browser=not no_browser)

    asyncio.run(_login())


@cli.command()
@click.argument("link")
@click.option("--export/--no-export", default=False, help="Write a text file with the track info")
@click.option("--basic", is_flag=True, help="Export only title, artist, key and tempo")
@click.option(
    "--output", "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the export file (default: output.export_directory)"
)
@click.option("--no-browser", is_flag=True, help="Print the authorization URL instead of opening it")
@click.pass_context
@handle_error
def analyze(ctx, link, export, basic, output, no_browser):
    """
    Analyze a track

    LINK can be a track URL, a track URI or a bare 22-character track id.
    When no session exists the login flow runs once before the analysis.
    """
    config = _get_config(ctx)

    async def _analyze() -> AnalyzedTrack:
        timeout = aiohttp.ClientTimeout(total=config.api.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            authenticator = _build_authenticator(config, session)
            orchestrator = AnalysisOrchestrator(
                LinkResolver(config.api.web_url),
                authenticator,
                TrackDataClient(config.api, session),
                config.analysis,
            )
            try:
                return await orchestrator.analyze(link)
            except AuthenticationRequiredError as e:
                click.echo(click.style(e.user_message, fg="yellow"))
                await _run_login(
                    authenticator,
                    config,
                    open_browser=not no_browser,
                    authorization_url=e.authorization_url,
                )
                return await orchestrator.analyze(link)

    track = asyncio.run(_analyze())
    print_track_card(track, config.api.web_url)

    if export:
        directory = output or config.output.export_directory
        path = write_export(track, directory, extended=not basic, web_url=config.api.web_url)
        click.echo(click.style(f"\nExported to: {path}", fg="green"))


@cli.command()
@click.pass_context
@handle_error
def status(ctx):
    """
    Show the stored session

    Reports whether a token is stored, when it expires and whether a
    login is waiting to be completed.
    """
    config = _get_config(ctx)
    authenticator = _build_authenticator(config)
    credential = authenticator.current_credential()

    click.echo(f"Session file: {config.output.session_file}")
    if authenticator.state is AuthState.AUTHENTICATED and credential is not None:
        expired = credential.is_expired()
        label = "Expired" if expired else "Authenticated"
        click.echo(f"Authentication Status: {label}")
        click.echo(f"   Token: {mask_secret(credential.access_token)}")
        if credential.expires_at is not None:
            click.echo(f"   Expires at: {credential.expires_at} (epoch seconds)")
        if credential.scope:
            click.echo(f"   Scope: {credential.scope}")
        if expired:
            click.echo("   Run 'track-analyzer login' to authenticate again")
    else:
        click.echo("Authentication Status: Not authenticated")
        click.echo("   Run 'track-analyzer login' to authenticate")

    if authenticator.has_pending_login:
        click.echo("   A login was started but not completed")


@cli.command()
@click.pass_context
@handle_error
def logout(ctx):
    """
    Remove stored authentication

    Clears the stored token and any pending login.
    """
    config = _get_config(ctx)
    authenticator = _build_authenticator(config)
    authenticator.logout()
    click.echo("Successfully logged out")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
