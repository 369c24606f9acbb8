#!/usr/bin/env python3
"""
Terminal front end for the barbershop booking client.

Every command resolves the session from the stored token first and then runs
behind a RoleGate carrying the allow-list of the page it stands for.

USAGE:
    barbershop login --email ana@example.com
    barbershop services
    barbershop availability --barber 5 --service 2 --date 2025-06-10
    barbershop book --barber 5 --service 2 --date 2025-06-10 --time 10:30
    barbershop appointments --view calendar --calendar-view week
    barbershop --yes cancel 42

EXIT CODES:
    0 - Success
    1 - The command failed, or the session is missing or not allowed
    2 - Invalid arguments
"""

import argparse
import asyncio
import getpass
import logging
import mimetypes
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Awaitable, Callable, Optional

from .availability import AvailabilityNegotiator
from .booking_form import AppointmentForm
from .clients import AiClient, AppointmentsClient, AuthClient, HaircutsClient, UsersClient
from .core.config import Settings, get_settings
from .core.errors import ApiError, BarbershopError, ErrorCodes, PreconditionError
from .core.http import ApiClient
from .enrichment import EnrichmentService, ReferenceLoader
from .models import PAYMENT_ALIASES, PaymentStatus, UserRole
from .notifications import Confirmer, ConsoleConfirmer, ConsoleNotifier, Navigator, Notifier
from .role_gate import GateState, RoleGate
from .session import FileTokenStorage, SessionStore
from .views import (
    AppointmentActions,
    AppointmentCalendar,
    AppointmentCollection,
    build_cards,
    build_table,
    render_cards,
    render_summary,
    render_table,
    summarize,
)

logger = logging.getLogger(__name__)

ANY_ROLE = (UserRole.CLIENT, UserRole.BARBER, UserRole.ADMIN)
STAFF_ROLES = (UserRole.BARBER, UserRole.ADMIN)


# ────────────────────────────────────────────────────────────────
# Wiring
# ────────────────────────────────────────────────────────────────

@dataclass
class App:
    """Everything a command needs, built once per invocation."""

    settings: Settings
    api: ApiClient
    users: UsersClient
    haircuts: HaircutsClient
    appointments: AppointmentsClient
    auth: AuthClient
    ai: AiClient
    session: SessionStore
    notifier: Notifier
    confirmer: Confirmer

    @classmethod
    def create(cls, settings: Settings, assume_yes: bool = False) -> "App":
        storage = FileTokenStorage(settings.token_file)
        api = ApiClient(settings, token_provider=storage.read)
        users = UsersClient(api)
        notifier = ConsoleNotifier()
        return cls(
            settings=settings,
            api=api,
            users=users,
            haircuts=HaircutsClient(api),
            appointments=AppointmentsClient(api),
            auth=AuthClient(api),
            ai=AiClient(settings),
            session=SessionStore(storage, users, Navigator(), notifier),
            notifier=notifier,
            confirmer=ConsoleConfirmer(assume_yes=assume_yes),
        )

    def negotiator(self) -> AvailabilityNegotiator:
        return AvailabilityNegotiator(
            self.appointments,
            self.notifier,
            debounce_seconds=self.settings.availability_debounce_seconds,
            tz_name=self.settings.shop_timezone,
        )

    def collection(self) -> AppointmentCollection:
        enrichment = EnrichmentService(ReferenceLoader(self.users, self.haircuts))
        return AppointmentCollection(self.appointments, enrichment, self.notifier)

    def actions(self, collection: AppointmentCollection) -> AppointmentActions:
        return AppointmentActions(
            self.appointments,
            self.session.identity,
            self.notifier,
            self.confirmer,
            on_refresh=collection.reload,
        )

    async def aclose(self) -> None:
        await self.session.aclose()
        await self.api.aclose()
        await self.ai.aclose()


def parse_payment_status(value: str) -> PaymentStatus:
    text = value.strip().lower()
    number = int(text) if text.isdigit() else PAYMENT_ALIASES.get(text)
    try:
        return PaymentStatus(number)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid payment status: {value}")


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {value}")


# ────────────────────────────────────────────────────────────────
# Session commands
# ────────────────────────────────────────────────────────────────

async def cmd_login(app: App, args: argparse.Namespace) -> int:
    if args.token:
        token = args.token
    elif args.google_token:
        token = await app.auth.google_login(args.google_token)
    else:
        email = args.email or input("Email: ")
        password = args.password or getpass.getpass("Contraseña: ")
        token = await app.auth.login(email, password)

    route = await app.session.login(token)
    app.notifier.success(f"Bienvenido, {app.session.identity.display_name}")
    print(route)
    return 0


async def cmd_register(app: App, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Contraseña: ")
    token = await app.auth.register(args.name, args.email, password)
    if token:
        await app.session.login(token)
        app.notifier.success("Cuenta creada correctamente")
    else:
        app.notifier.success("Cuenta creada correctamente. Ya puedes iniciar sesión.")
    return 0


async def cmd_logout(app: App, args: argparse.Namespace) -> int:
    app.session.logout()
    return 0


async def cmd_whoami(app: App, args: argparse.Namespace) -> int:
    await app.session.wait_for_profile()
    identity = app.session.identity
    print(f"{identity.display_name} <{identity.email}>")
    print(f"Rol: {identity.role.label}")
    print(f"Id: {identity.id}")
    if identity.profile and identity.profile.phone_number:
        print(f"Teléfono: {identity.profile.phone_number}")
    return 0


# ────────────────────────────────────────────────────────────────
# Catalog commands
# ────────────────────────────────────────────────────────────────

async def cmd_services(app: App, args: argparse.Namespace) -> int:
    haircuts = await app.haircuts.list_haircuts(active_only=not args.all)
    if not haircuts:
        print("No hay servicios disponibles")
    for haircut in haircuts:
        print(f"{haircut.id:>4}  {haircut.option_label}")
    return 0


async def cmd_barbers(app: App, args: argparse.Namespace) -> int:
    barbers = await app.users.list_barbers()
    if not barbers:
        print("No hay barberos disponibles")
    for barber in barbers:
        print(f"{barber.id:>4}  {barber.full_name}")
    return 0


async def cmd_availability(app: App, args: argparse.Namespace) -> int:
    negotiator = app.negotiator()
    try:
        negotiator.update(
            barber_id=args.barber,
            haircut_id=args.service,
            appointment_date=args.date.isoformat(),
        )
        times = await negotiator.settle()
    finally:
        await negotiator.aclose()

    if negotiator.hint:
        app.notifier.info(negotiator.hint)
        return 1
    if negotiator.warning:
        return 1
    if not times:
        print("No hay horarios disponibles para esa fecha")
        return 0
    print("  ".join(times))
    return 0


# ────────────────────────────────────────────────────────────────
# Appointment commands
# ────────────────────────────────────────────────────────────────

async def _fill_form(form: AppointmentForm, args: argparse.Namespace) -> None:
    if args.service is not None:
        form.set_service(args.service)
    if args.barber is not None:
        form.set_barber(args.barber)
    if args.date is not None:
        form.set_date(args.date)
    await form.negotiator.settle()
    if args.time is not None:
        form.set_time(args.time)
    if args.notes is not None:
        form.set_notes(args.notes)


def _report_form(form: AppointmentForm) -> None:
    for field_name, message in form.errors.items():
        print(f"  {field_name}: {message}", file=sys.stderr)
    if form.available_times:
        print("Horarios disponibles: " + "  ".join(form.available_times), file=sys.stderr)
    elif form.negotiator.hint:
        print(form.negotiator.hint, file=sys.stderr)


async def cmd_book(app: App, args: argparse.Namespace) -> int:
    negotiator = app.negotiator()
    form = AppointmentForm(app.appointments, negotiator, app.session, app.notifier)
    try:
        await _fill_form(form, args)
        if not await form.submit():
            _report_form(form)
            return 1
    finally:
        await negotiator.aclose()
    return 0


async def _load_appointment(app: App, collection: AppointmentCollection, appointment_id: int):
    await collection.reload()
    appointment = collection.find(appointment_id)
    if appointment is None:
        appointment = await app.appointments.get(appointment_id)
    return appointment


async def cmd_edit(app: App, args: argparse.Namespace) -> int:
    collection = app.collection()
    appointment = await _load_appointment(app, collection, args.id)
    if not await app.actions(collection).confirm_edit(appointment):
        return 1

    negotiator = app.negotiator()
    form = AppointmentForm(
        app.appointments,
        negotiator,
        app.session,
        app.notifier,
        appointment=appointment,
        on_success=collection.reload,
    )
    try:
        await _fill_form(form, args)
        if not await form.submit():
            _report_form(form)
            return 1
    finally:
        await negotiator.aclose()
    return 0


async def cmd_cancel(app: App, args: argparse.Namespace) -> int:
    collection = app.collection()
    appointment = await _load_appointment(app, collection, args.id)
    return 0 if await app.actions(collection).cancel(appointment) else 1


async def cmd_complete(app: App, args: argparse.Namespace) -> int:
    collection = app.collection()
    appointment = await _load_appointment(app, collection, args.id)
    return 0 if await app.actions(collection).complete(appointment) else 1


async def cmd_payment(app: App, args: argparse.Namespace) -> int:
    collection = app.collection()
    appointment = await _load_appointment(app, collection, args.id)
    changed = await app.actions(collection).change_payment_status(appointment, args.status)
    return 0 if changed else 1


async def cmd_appointments(app: App, args: argparse.Namespace) -> int:
    collection = app.collection()
    items = await collection.reload()
    if collection.error:
        return 1
    identity = app.session.identity
    if args.view == "calendar":
        print(AppointmentCalendar(items, current=args.date, view=args.calendar_view).render())
    elif args.view == "cards":
        print(render_cards(build_cards(items, identity)))
    else:
        print(render_table(build_table(items, identity)))
    return 0


async def cmd_dashboard(app: App, args: argparse.Namespace) -> int:
    collection = app.collection()
    items = await collection.reload()
    if collection.error:
        return 1
    print(render_summary(summarize(items, today=args.date)))
    return 0


# ────────────────────────────────────────────────────────────────
# Account commands
# ────────────────────────────────────────────────────────────────

def read_image(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        logger.debug(f"Could not read {path}: {e}")
        raise PreconditionError(f"No se pudo leer el archivo: {path}", code=ErrorCodes.INVALID_INPUT)


async def cmd_profile(app: App, args: argparse.Namespace) -> int:
    identity = app.session.identity
    photo = Path(args.photo) if args.photo is not None else None
    photo_bytes = read_image(photo) if photo is not None else None

    if args.name is not None or args.phone is not None:
        await app.users.update_user(identity.id, full_name=args.name, phone_number=args.phone)
        app.notifier.success("Perfil actualizado correctamente")
    if photo is not None:
        content_type = mimetypes.guess_type(photo.name)[0] or "image/jpeg"
        url = await app.users.upload_profile_photo(identity.id, photo.name, photo_bytes, content_type)
        app.notifier.success("Foto de perfil actualizada")
        print(url)

    await app.session.refresh()
    profile = app.session.identity.profile if app.session.identity else None
    if profile is None:
        return 1
    print(f"Nombre: {profile.full_name}")
    print(f"Email: {profile.email}")
    print(f"Teléfono: {profile.phone_number or 'N/A'}")
    if profile.profile_photo_url:
        print(f"Foto: {profile.profile_photo_url}")
    return 0


async def cmd_staff(app: App, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Contraseña: ")
    await app.users.create_staff(args.name, args.email, password, args.role)
    app.notifier.success("Personal registrado correctamente")
    return 0


async def cmd_ask(app: App, args: argparse.Namespace) -> int:
    print(await app.ai.chat(" ".join(args.message), context=args.context))
    return 0


async def cmd_analyze(app: App, args: argparse.Namespace) -> int:
    path = Path(args.image)
    content_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    identity = app.session.identity
    user_id = str(identity.id) if identity else "anonymous"
    analysis = await app.ai.analyze_haircut_image(path.name, read_image(path), user_id, content_type)
    print(f"Estilo recomendado: {analysis.recommended_style}")
    if analysis.confidence_level:
        print(f"Confianza: {analysis.confidence_level}")
    if analysis.analysis_report:
        print(analysis.analysis_report)
    return 0


# ────────────────────────────────────────────────────────────────
# Command table
# ────────────────────────────────────────────────────────────────

Handler = Callable[[App, argparse.Namespace], Awaitable[int]]

# name -> (handler, allowed roles); None means no session is required
COMMANDS: dict[str, tuple[Handler, Optional[tuple[UserRole, ...]]]] = {
    "login": (cmd_login, None),
    "register": (cmd_register, None),
    "logout": (cmd_logout, None),
    "whoami": (cmd_whoami, ANY_ROLE),
    "services": (cmd_services, None),
    "barbers": (cmd_barbers, None),
    "availability": (cmd_availability, None),
    "book": (cmd_book, ANY_ROLE),
    "edit": (cmd_edit, ANY_ROLE),
    "cancel": (cmd_cancel, ANY_ROLE),
    "complete": (cmd_complete, STAFF_ROLES),
    "payment": (cmd_payment, ANY_ROLE),
    "appointments": (cmd_appointments, ANY_ROLE),
    "dashboard": (cmd_dashboard, STAFF_ROLES),
    "profile": (cmd_profile, ANY_ROLE),
    "staff": (cmd_staff, (UserRole.ADMIN,)),
    "ask": (cmd_ask, None),
    "analyze": (cmd_analyze, None),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="barbershop",
        description="Barbershop booking client",
    )
    parser.add_argument("-y", "--yes", action="store_true", help="Confirm actions without asking")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="Log in and store the session token")
    p.add_argument("--email")
    p.add_argument("--password")
    p.add_argument("--token", help="Use an existing bearer token")
    p.add_argument("--google-token", help="Exchange a Google identity token")

    p = sub.add_parser("register", help="Create a client account")
    p.add_argument("--name", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--password")

    sub.add_parser("logout", help="Forget the stored session")
    sub.add_parser("whoami", help="Show the current user")

    p = sub.add_parser("services", help="List services")
    p.add_argument("--all", action="store_true", help="Include inactive services")

    sub.add_parser("barbers", help="List barbers")

    p = sub.add_parser("availability", help="Show bookable times")
    p.add_argument("--barber", type=int, required=True)
    p.add_argument("--service", type=int)
    p.add_argument("--date", type=parse_date, required=True)

    for name, help_text in (("book", "Book an appointment"), ("edit", "Edit an appointment")):
        p = sub.add_parser(name, help=help_text)
        if name == "edit":
            p.add_argument("id", type=int)
        p.add_argument("--barber", type=int)
        p.add_argument("--service", type=int)
        p.add_argument("--date", type=parse_date)
        p.add_argument("--time", help="HH:MM")
        p.add_argument("--notes")

    for name, help_text in (("cancel", "Cancel an appointment"), ("complete", "Mark an appointment as completed")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("id", type=int)

    p = sub.add_parser("payment", help="Change the payment status of an appointment")
    p.add_argument("id", type=int)
    p.add_argument("status", type=parse_payment_status, help="pending | paid | failed")

    p = sub.add_parser("appointments", help="List appointments")
    p.add_argument("--view", choices=("table", "calendar", "cards"), default="table")
    p.add_argument("--calendar-view", choices=AppointmentCalendar.VIEWS, default="month")
    p.add_argument("--date", type=parse_date, help="Calendar anchor date")

    p = sub.add_parser("dashboard", help="Appointment summary for staff")
    p.add_argument("--date", type=parse_date, help="Day to show (default: today)")

    p = sub.add_parser("profile", help="Show or update your profile")
    p.add_argument("--name")
    p.add_argument("--phone")
    p.add_argument("--photo", help="Path to a new profile photo")

    p = sub.add_parser("staff", help="Register a barber or an administrator")
    p.add_argument("--name", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--password")
    p.add_argument("--role", choices=("barber", "admin"), required=True)

    p = sub.add_parser("ask", help="Ask the AI assistant for a recommendation")
    p.add_argument("message", nargs="+")
    p.add_argument("--context")

    p = sub.add_parser("analyze", help="Analyze a haircut photo")
    p.add_argument("image")

    return parser


# ────────────────────────────────────────────────────────────────
# Entry point
# ────────────────────────────────────────────────────────────────

async def run_command(app: App, args: argparse.Namespace) -> int:
    handler, allowed_roles = COMMANDS[args.command]
    await app.session.load_from_storage()

    try:
        if allowed_roles is None:
            return await handler(app, args)

        gate = RoleGate(app.session, allowed_roles)
        result = await gate.run(lambda: handler(app, args))
        if gate.state == GateState.REDIRECTING:
            app.notifier.error("Debes iniciar sesión para continuar (barbershop login)")
            return 1
        if gate.state == GateState.FORBIDDEN:
            app.notifier.error("No tienes permiso para acceder a esta sección")
            return 1
        return result if result is not None else 1
    except ApiError as e:
        if e.is_unauthorized and app.session.is_authenticated:
            app.notifier.error("Sesión expirada. Por favor, inicia sesión nuevamente.")
        else:
            app.notifier.error(e.message)
        return 1
    except BarbershopError as e:
        app.notifier.error(e.message)
        return 1


async def _main(args: argparse.Namespace, settings: Settings) -> int:
    app = App.create(settings, assume_yes=args.yes)
    app.session.start_watching(settings.session_watch_interval_seconds)
    try:
        return await run_command(app, args)
    finally:
        await app.aclose()


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_main(args, settings))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
