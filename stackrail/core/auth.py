"""
StackRail - Account Commands

join -> verify -> login -> logout. Signup keeps a profile draft on
disk until the emailed OTP is confirmed, then forwards it to the
backend `profile` table.
"""
from supabase import AuthError, PostgrestAPIError

from ..utils import logging as sr_log
from . import prompts
from .context import AppContext
from .session_manager import describe_error


async def cmd_join(ctx: AppContext):
    """Create an account and stash the profile draft until verification."""
    console = ctx.console
    sr_log.print_command_header(console, "--- Initiating StackRail Sign Up Process ---",
                                "Please enter your details to create a new account.")
    profile, password = prompts.ask_new_profile(console)

    try:
        await ctx.client.auth.sign_up({"email": profile.email, "password": password})
    except AuthError as e:
        sr_log.print_error(console, f"Sign-up error: {describe_error(e)}")
        return

    result = ctx.store.save_profile(profile)
    if not result.ok:
        sr_log.print_error(console, f"Could not save your profile information: {result.detail}")
        return

    sr_log.print_success(console, "\nYour profile information was successfully saved.")
    sr_log.print_hint(console, "Use the command `stackrail verify` to enter the OTP that was sent to "
                               "your email to complete the account creation process.")


async def cmd_verify(ctx: AppContext):
    """Confirm the signup OTP, create the profile row and log the user in."""
    console = ctx.console
    sr_log.print_command_header(console, "--- Completing account verification ---",
                                "Please enter your email and the provided OTP.")
    draft = ctx.store.load_profile()
    email, code = prompts.ask_otp(console, default_email=draft.email if draft else None)

    try:
        response = await ctx.client.auth.verify_otp({"email": email, "token": code, "type": "email"})
    except AuthError as e:
        sr_log.print_error(console, f"Verification error: {describe_error(e)}")
        return

    session = getattr(response, "session", None)
    if not session:
        sr_log.print_error(console, "\nFailed to verify your StackRail account!")
        return

    if draft is None:
        sr_log.print_error(console, "No saved profile found. Please sign up again: `stackrail join`")
        return

    try:
        await ctx.remote.insert_profile(draft, email)
    except PostgrestAPIError as e:
        sr_log.print_error(console, f"Could not create your profile: {describe_error(e)}")
        return

    ctx.store.delete_profile()
    if not ctx.sessions.save_session(session):
        sr_log.print_warning(console, "Your session could not be saved locally; please login again.")

    sr_log.print_success(console, "\nYou have successfully joined StackRail!")
    sr_log.print_hint(console, "Create your first project: `stackrail project --new`")


async def cmd_login(ctx: AppContext):
    console = ctx.console
    sr_log.print_command_header(console, "--- Initiating StackRail Login Process ---",
                                "Please enter your account details.")
    email, password = prompts.ask_credentials(console)

    try:
        response = await ctx.client.auth.sign_in_with_password({"email": email, "password": password})
    except AuthError as e:
        sr_log.print_error(console, f"Sign-in error: {describe_error(e)}")
        return

    if not ctx.sessions.save_session(response.session):
        sr_log.print_warning(console, "Logged in, but the session could not be saved locally. "
                                      "You will need to login again next time.")
    sr_log.print_success(console, "\nLogin successful...\n")
    sr_log.print_banner(console)


async def cmd_logout(ctx: AppContext):
    """Revoke the session on the backend when possible, then always forget it locally."""
    console = ctx.console
    sr_log.print_command_header(console, "--- Initiating StackRail Logout Process ---")

    if ctx.sessions.load_session() is not None and await ctx.sessions.authenticate_session():
        try:
            await ctx.client.auth.sign_out()
        except Exception as e:
            # Transport errors get here too; the local session is cleared regardless
            sr_log.print_warning(console, f"Sign-out error: {describe_error(e)}")

    if not ctx.sessions.clear_session():
        sr_log.print_error(console, f"Could not remove the saved session at {ctx.store.session_path}")
        return
    sr_log.print_success(console, "\nYou have been successfully logged out...\n")
