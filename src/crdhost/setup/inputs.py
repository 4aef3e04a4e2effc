# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/setup/inputs.py

from __future__ import annotations

import logging
import pwd
import re
from typing import Callable, Protocol

import typer
from pydantic import BaseModel, SecretStr

from crdhost.errors import ValidationError

log = logging.getLogger("crdhost")

USERNAME_RE = re.compile(r"^[a-z][-a-z0-9]*$")
PIN_RE = re.compile(r"^[0-9]{6,}$")
MIN_PASSWORD_LENGTH = 8
CRD_COMMAND_PREFIX = "DISPLAY="


def user_exists(username: str) -> bool:
    try:
        pwd.getpwnam(username)
    except KeyError:
        return False
    return True


# ------------------------------------------------------------------
# Pure validation (no prompts, no mutation)
# ------------------------------------------------------------------

def validate_username(username: str, *, exists: Callable[[str], bool] = user_exists) -> str:
    if not USERNAME_RE.fullmatch(username or ""):
        raise ValidationError("Invalid username. Use lowercase letters, numbers, and hyphens only.")
    if exists(username):
        raise ValidationError(f"User '{username}' already exists.")
    return username


def validate_password(password: str, confirmation: str | None = None) -> str:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if confirmation is not None and confirmation != password:
        raise ValidationError("Passwords do not match. Please try again.")
    return password


def validate_pin(pin: str) -> str:
    if not PIN_RE.fullmatch(pin or ""):
        raise ValidationError("PIN must be 6 or more digits.")
    return pin


def validate_crd_command(command: str) -> str:
    command = (command or "").strip()
    if not command.startswith(CRD_COMMAND_PREFIX):
        raise ValidationError(
            f"Invalid command. Please paste the full command starting with '{CRD_COMMAND_PREFIX}'"
        )
    return command


class OperatorInput(BaseModel):
    username: str
    password: SecretStr

    @classmethod
    def checked(
        cls,
        username: str,
        password: str,
        confirmation: str,
        *,
        exists: Callable[[str], bool] = user_exists,
    ) -> "OperatorInput":
        return cls(
            username=validate_username(username, exists=exists),
            password=validate_password(password, confirmation),
        )


class CrdAuthorization(BaseModel):
    command: SecretStr
    pin: SecretStr

    @classmethod
    def checked(cls, command: str, pin: str) -> "CrdAuthorization":
        return cls(command=validate_crd_command(command), pin=validate_pin(pin))

    def host_command(self) -> str:
        return f"{self.command.get_secret_value()} --pin={self.pin.get_secret_value()}"


# ------------------------------------------------------------------
# Prompting
# ------------------------------------------------------------------

class Prompter(Protocol):
    def prompt(self, text: str, *, hide_input: bool = False) -> str: ...
    def confirm(self, text: str) -> bool: ...
    def show(self, text: str) -> None: ...


class TyperPrompter:
    """Interactive prompts on the controlling terminal."""

    def prompt(self, text: str, *, hide_input: bool = False) -> str:
        return typer.prompt(text, hide_input=hide_input, default="", show_default=False)

    def confirm(self, text: str) -> bool:
        return typer.confirm(text, default=False)

    def show(self, text: str) -> None:
        typer.echo(text)


def collect_operator_input(
    prompter: Prompter,
    *,
    exists: Callable[[str], bool] = user_exists,
) -> OperatorInput:
    """Ask until a valid, unused username and a confirmed password are given."""
    while True:
        username = prompter.prompt("Enter username").strip()
        try:
            validate_username(username, exists=exists)
            break
        except ValidationError as e:
            log.error("%s", e)

    while True:
        password = prompter.prompt("Enter password", hide_input=True)
        try:
            validate_password(password)
            confirmation = prompter.prompt("Confirm password", hide_input=True)
            return OperatorInput.checked(username, password, confirmation, exists=exists)
        except ValidationError as e:
            log.error("%s", e)


def collect_crd_authorization(prompter: Prompter, *, headless_url: str) -> CrdAuthorization:
    """Walk the operator through the headless pairing page and read command + PIN."""
    log.info("Please visit: %s", headless_url)
    log.info("1. Sign in with your Google account")
    log.info("2. Click on 'Set up via SSH'")
    log.info("3. Copy the command that starts with '%s'", CRD_COMMAND_PREFIX)

    while True:
        command = prompter.prompt("Paste the CRD command here")
        try:
            command = validate_crd_command(command)
            break
        except ValidationError as e:
            log.error("%s", e)

    while True:
        pin = prompter.prompt("Enter a PIN for CRD (6 or more digits)", hide_input=True).strip()
        try:
            return CrdAuthorization.checked(command, pin)
        except ValidationError as e:
            log.error("%s", e)
