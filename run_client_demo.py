"""
End-to-end walk-through of the screening client against an in-process backend.

This script exercises:
1. Configuration loading and validation
2. Sign-up and sign-in
3. Racing profile refreshes (newest request wins)
4. Editing the profile (only changed fields are sent)
5. Profile photo upload
6. Session expiry and recovery
7. Logout

Run with: uv run python run_client_demo.py
"""

import asyncio
import io
import tempfile
from pathlib import Path

import httpx
from PIL import Image
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from additiya.adapters import InMemoryStorage, SimulatedBackend, StaticPermissionGateway
from additiya.adapters.media import FileImagePicker
from additiya.client import ScreeningClient
from additiya.config import get_config, print_config_summary, validate_config
from additiya.domain.errors import AuthExpired, Busy
from additiya.domain.models import FetchTrigger, ImageSource, RedirectReason, Registration
from additiya.services.profile_sync import compute_diff

console = Console()

DEMO_EMAIL = "priya.sharma@example.com"
DEMO_PASSWORD = "screening-2024"


class ConsoleNavigator:
    """Prints redirects instead of switching screens."""

    def __init__(self) -> None:
        self.redirects: list[RedirectReason] = []

    def redirect_to_entry(self, reason: RedirectReason) -> None:
        self.redirects.append(reason)
        console.print(f"↩️  Redirect to entry screen ({reason.value})", style="magenta")


def _sample_photo(path: Path) -> Path:
    img = Image.new("RGB", (1600, 1200), (34, 211, 238))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    path.write_bytes(buffer.getvalue())
    return path


def _build_client(backend: SimulatedBackend, navigator: ConsoleNavigator, photo: Path) -> ScreeningClient:
    config = get_config()

    async def choose(source: ImageSource) -> Path | None:
        return photo

    return ScreeningClient(
        config,
        storage=InMemoryStorage(),
        navigator=navigator,
        permissions=StaticPermissionGateway(),
        picker=FileImagePicker(choose),
        http_client=httpx.AsyncClient(transport=backend.transport(), base_url=config.api.base_url),
    )


def _profile_table(title: str, client: ScreeningClient) -> Table:
    table = Table(title=title)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    snapshot = client.profile.snapshot
    if snapshot is None:
        table.add_row("(none)", "no profile loaded")
        return table
    for field in ("name", "email", "address", "phone", "photo_ref"):
        table.add_row(field, str(getattr(snapshot, field) or "-"))
    return table


async def demo_configuration() -> bool:
    """Load and validate configuration."""

    console.print(Panel("🔧 Configuration", style="blue"))
    try:
        validate_config()
        print_config_summary()
        console.print("✅ Configuration loaded successfully", style="green")
        return True
    except Exception as e:
        console.print(f"❌ Configuration failed: {e}", style="red")
        return False


async def demo_sign_up_and_in(client: ScreeningClient) -> bool:
    """Register a new account, log out, then sign back in."""

    console.print(Panel("📝 Sign up and sign in", style="blue"))

    rejected = await client.session.login(DEMO_EMAIL, "not-registered")
    console.print(f"Unknown account: {rejected.unwrap_err().user_message}", style="yellow")

    registration = Registration(
        name="  Priya Sharma ",
        email="Priya.Sharma@Example.com",
        address="12 Lake View Road, Pune",
        phone="9876543210",
        password=DEMO_PASSWORD,
        confirm_password=DEMO_PASSWORD,
    )
    registered = await client.session.register(registration)
    if registered.is_err():
        console.print(f"❌ Registration failed: {registered.unwrap_err()}", style="red")
        return False
    console.print(f"Registered, session state: {registered.unwrap().value}", style="green")

    await client.session.logout()
    logged_in = await client.session.login(DEMO_EMAIL.upper(), DEMO_PASSWORD)
    if logged_in.is_err():
        console.print(f"❌ Sign in failed: {logged_in.unwrap_err()}", style="red")
        return False

    console.print(f"✅ Signed in, state: {client.session.state.value}", style="green")
    return client.session.is_authenticated


async def demo_racing_refreshes(client: ScreeningClient, backend: SimulatedBackend) -> bool:
    """Fire three refreshes whose responses arrive out of order."""

    console.print(Panel("🔄 Racing profile refreshes", style="blue"))

    # Mount answers last, focus answers first
    backend.queue_delays(0.3, 0.05, 0.15)
    results = await asyncio.gather(
        client.profile.fetch(FetchTrigger.MOUNT),
        client.profile.fetch(FetchTrigger.FOCUS),
        client.profile.fetch(FetchTrigger.MANUAL_REFRESH),
    )

    table = Table(title="Fetch results")
    table.add_column("Trigger", style="cyan")
    table.add_column("Outcome", style="white")
    for trigger, result in zip(("mount", "focus", "manual_refresh"), results, strict=True):
        table.add_row(trigger, "ok" if result.is_ok() else type(result.unwrap_err()).__name__)
    console.print(table)
    console.print(_profile_table("Committed snapshot", client))

    return all(r.is_ok() for r in results) and client.profile.snapshot is not None


async def demo_profile_edit(client: ScreeningClient) -> bool:
    """Edit two fields and send only those."""

    console.print(Panel("✏️  Profile edit", style="blue"))

    draft = client.profile.begin_edit()
    draft.address = "  45 Hill Crest Avenue, Pune  "
    draft.phone = "9123456780"
    console.print(f"Changed fields: {compute_diff(draft, client.profile.snapshot)}", style="yellow")

    first, second = await asyncio.gather(
        client.profile.save_draft(draft),
        client.profile.update({"name": "Someone Else"}),
    )
    if second.is_err() and isinstance(second.unwrap_err(), Busy):
        console.print("Second save rejected while the first was pending", style="yellow")

    if first.is_err():
        console.print(f"❌ Save failed: {first.unwrap_err()}", style="red")
        return False

    console.print(_profile_table("After save", client))
    return not client.profile.has_unsaved_changes(draft)


async def demo_photo_upload(client: ScreeningClient) -> bool:
    """Pick, encode and upload a profile photo."""

    console.print(Panel("📷 Profile photo", style="blue"))

    if client.media is None:
        console.print("❌ Media pipeline not configured", style="red")
        return False

    result = await client.media.upload_profile_photo(ImageSource.LIBRARY)
    if result.is_err():
        console.print(f"❌ Upload failed: {result.unwrap_err()}", style="red")
        return False

    snapshot = result.unwrap()
    console.print(f"✅ Photo stored at {snapshot.photo_ref if snapshot else '-'}", style="green")
    return snapshot is not None and snapshot.photo_ref is not None


async def demo_session_expiry(
    client: ScreeningClient, backend: SimulatedBackend, navigator: ConsoleNavigator
) -> bool:
    """Expire the credential server-side and watch the client recover."""

    console.print(Panel("⏳ Session expiry", style="blue"))

    redirects_before = len(navigator.redirects)
    backend.revoke_all_tokens()
    results = await asyncio.gather(
        client.profile.fetch(FetchTrigger.FOCUS),
        client.profile.fetch(FetchTrigger.MANUAL_REFRESH),
    )
    expired = all(r.is_err() and isinstance(r.unwrap_err(), AuthExpired) for r in results)
    stored = await client.token_store.is_present()
    signals = navigator.redirects[redirects_before:]

    console.print(f"State: {client.session.state.value}, credential stored: {stored}")
    console.print(f"Redirect signals: {[r.value for r in signals]}")

    relogin = await client.session.login(DEMO_EMAIL, DEMO_PASSWORD)
    return expired and not stored and len(signals) == 1 and relogin.is_ok()


async def demo_logout(client: ScreeningClient, backend: SimulatedBackend) -> bool:
    """Log out while the backend is unreachable."""

    console.print(Panel("🚪 Logout", style="blue"))

    async def confirm() -> bool:
        console.print("Are you sure you want to logout? [y]", style="yellow")
        return True

    backend.offline = True
    done = await client.session.logout(confirm)
    backend.offline = False

    stored = await client.token_store.is_present()
    console.print(f"Logged out: {done}, credential stored: {stored}")

    calls_before = len(backend.requests)
    missing = await client.profile.fetch(FetchTrigger.MOUNT)
    console.print(f"Fetch without credential: {type(missing.unwrap_err()).__name__}")
    return done and not stored and calls_before == len(backend.requests)


async def run_demo() -> None:
    """Run every step in order against one client."""

    console.print(Panel("🩺 ADDITIYA Screening Client - Walk-through", style="bold blue"))

    backend = SimulatedBackend(latency_seconds=0.02)
    navigator = ConsoleNavigator()
    results: list[tuple[str, bool]] = [("Configuration", await demo_configuration())]

    with tempfile.TemporaryDirectory() as tmp:
        photo = _sample_photo(Path(tmp) / "demo_photo.png")

        async with _build_client(backend, navigator, photo) as client:
            steps = [
                ("Sign up / sign in", lambda: demo_sign_up_and_in(client)),
                ("Racing refreshes", lambda: demo_racing_refreshes(client, backend)),
                ("Profile edit", lambda: demo_profile_edit(client)),
                ("Photo upload", lambda: demo_photo_upload(client)),
                ("Session expiry", lambda: demo_session_expiry(client, backend, navigator)),
                ("Logout", lambda: demo_logout(client, backend)),
            ]
            for step_name, step in steps:
                console.print(f"\n{'=' * 60}")
                try:
                    results.append((step_name, await step()))
                except Exception as e:
                    console.print(f"❌ {step_name} failed with exception: {e}", style="red")
                    results.append((step_name, False))

    console.print(f"\n{'=' * 60}")
    console.print(Panel("📋 Summary", style="bold"))

    summary_table = Table()
    summary_table.add_column("Step", style="cyan")
    summary_table.add_column("Result", style="white")

    passed = 0
    for step_name, ok in results:
        if ok:
            summary_table.add_row(step_name, "✅ PASSED")
            passed += 1
        else:
            summary_table.add_row(step_name, "❌ FAILED")

    console.print(summary_table)
    console.print(f"\n🎯 Results: {passed}/{len(results)} steps passed")


if __name__ == "__main__":
    try:
        asyncio.run(run_demo())
    except KeyboardInterrupt:
        console.print("\n👋 Demo stopped by user", style="yellow")
