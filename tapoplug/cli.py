"""python-tapoplug cli tool."""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from functools import singledispatch
from pprint import pformat as pf

import asyncclick as click

from tapoplug import (
    CommandResult,
    Credentials,
    DeviceConfig,
    DeviceEncryptionType,
    TapoPlug,
)
from tapoplug.json import dumps as json_dumps

echo = click.echo

ENCRYPT_TYPES = [encrypt_type.value for encrypt_type in DeviceEncryptionType]

click.anyio_backend = "asyncio"

pass_plug = click.make_pass_decorator(TapoPlug)


def CatchAllExceptions(cls):
    """Capture all exceptions and prints them nicely.

    Idea from https://stackoverflow.com/a/44347763 and
    https://stackoverflow.com/questions/52213375
    """

    def _handle_exception(debug, exc) -> None:
        if isinstance(exc, click.ClickException):
            raise
        # Handle exit request from click.
        if isinstance(exc, click.exceptions.Exit):
            sys.exit(exc.exit_code)
        if isinstance(exc, click.exceptions.Abort):
            sys.exit(0)

        echo(f"Raised error: {exc}")
        if debug:
            raise
        echo("Run with --debug enabled to see stacktrace")
        sys.exit(1)

    class _CommandCls(cls):
        _debug = False

        async def make_context(self, info_name, args, parent=None, **extra):
            self._debug = any([arg for arg in args if arg in ["--debug", "-d"]])
            try:
                return await super().make_context(
                    info_name, args, parent=parent, **extra
                )
            except Exception as exc:
                _handle_exception(self._debug, exc)

        async def invoke(self, ctx):
            try:
                return await super().invoke(ctx)
            except Exception as exc:
                _handle_exception(self._debug, exc)

    return _CommandCls


def json_formatter_cb(result, **kwargs):
    """Format and output the result as JSON, if requested."""
    if not kwargs.get("json"):
        return

    @singledispatch
    def to_serializable(val):
        """Regular obj-to-string for json serialization.

        The singledispatch trick is from hynek: https://hynek.me/articles/serialization/
        """
        return str(val)

    print(json_dumps(result, default=to_serializable, indent=True))


def _check_result(result: CommandResult) -> CommandResult:
    """Raise a click error for failed results."""
    if result.ok:
        return result
    msg = f"{result.method} failed: {result.error}"
    if result.persistent_fault:
        msg += (
            "\nThe device keeps returning the same error, "
            + "it may need a factory reset."
        )
    raise click.ClickException(msg)


@click.group(
    invoke_without_command=True,
    cls=CatchAllExceptions(click.Group),
    result_callback=json_formatter_cb,
)
@click.option(
    "--host",
    envvar="TAPO_HOST",
    required=False,
    help="The host name or IP address of the plug to connect to.",
)
@click.option(
    "--port",
    envvar="TAPO_PORT",
    required=False,
    type=int,
    help="The port of the plug to connect to.",
)
@click.option(
    "--username",
    default=None,
    required=False,
    envvar="TAPO_USERNAME",
    help="Username/email address of the Tapo account.",
)
@click.option(
    "--password",
    default=None,
    required=False,
    envvar="TAPO_PASSWORD",
    help="Password of the Tapo account.",
)
@click.option(
    "--encrypt-type",
    envvar="TAPO_ENCRYPT_TYPE",
    default=DeviceEncryptionType.Klap.value,
    show_default=True,
    type=click.Choice(ENCRYPT_TYPES, case_sensitive=False),
    help="KLAP for current firmware, AES for firmware before 2023.",
)
@click.option(
    "--timeout",
    envvar="TAPO_TIMEOUT",
    default=DeviceConfig.DEFAULT_TIMEOUT,
    type=int,
    required=False,
    show_default=True,
    help="Timeout for device communications.",
)
@click.option(
    "--power-measurement/--no-power-measurement",
    envvar="TAPO_POWER_MEASUREMENT",
    default=False,
    help="Fetch energy usage while polling metering models.",
)
@click.option(
    "-d",
    "--debug",
    envvar="TAPO_DEBUG",
    default=False,
    is_flag=True,
    help="Print debug output",
)
@click.option(
    "--json/--no-json",
    envvar="TAPO_JSON",
    default=False,
    is_flag=True,
    help="Output raw device response as JSON.",
)
@click.version_option(package_name="python-tapoplug")
@click.pass_context
async def cli(
    ctx,
    host,
    port,
    username,
    password,
    encrypt_type,
    timeout,
    power_measurement,
    debug,
    json,
):
    """A tool for controlling TP-Link Tapo smart plugs."""
    # no need to perform any checks if we are just displaying the help
    if "--help" in sys.argv:
        # Context object is required to avoid crashing on sub-groups
        ctx.obj = object()
        return

    # If JSON output is requested, disable echo
    global echo
    if json:

        def _nop_echo(*args, **kwargs):
            pass

        echo = _nop_echo
    else:
        # Set back to default is required if running tests with CliRunner
        echo = click.echo

    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO)

    if host is None:
        raise click.BadOptionUsage("host", "A --host is required.")

    if bool(password) != bool(username):
        raise click.BadOptionUsage(
            "username", "Using authentication requires both --username and --password"
        )

    credentials = Credentials(username, password) if username else None
    config = DeviceConfig(
        host=host,
        port_override=port,
        credentials=credentials,
        encryption_type=DeviceEncryptionType(encrypt_type.upper()),
        timeout=timeout,
        power_measurement=power_measurement,
    )
    plug = TapoPlug(config)

    @asynccontextmanager
    async def async_wrapped_plug(plug: TapoPlug):
        try:
            yield plug
        finally:
            await plug.close()

    ctx.obj = await ctx.with_async_resource(async_wrapped_plug(plug))

    if ctx.invoked_subcommand is None:
        return await ctx.invoke(state)


@cli.command()
@pass_plug
async def state(plug: TapoPlug):
    """Print out the device info."""
    result = _check_result(await plug.get_info())
    echo(f"== {plug.alias} - {plug.model} ==")
    echo(f"\tHost: {plug.host}")
    echo(f"\tDevice state: {plug.status}")
    echo(pf(result.data))
    return result


@cli.command()
@pass_plug
async def on(plug: TapoPlug):
    """Turn the plug on."""
    echo(f"Turning on {plug.host}")
    result = _check_result(await plug.switch_on())
    echo(f"Device state: {plug.status}")
    return result


@cli.command()
@pass_plug
async def off(plug: TapoPlug):
    """Turn the plug off."""
    echo(f"Turning off {plug.host}")
    result = _check_result(await plug.switch_off())
    echo(f"Device state: {plug.status}")
    return result


@cli.command()
@pass_plug
async def energy(plug: TapoPlug):
    """Print out the energy usage of a metering plug."""
    _check_result(await plug.get_info())
    result = _check_result(await plug.get_energy())
    echo("== Energy usage ==")
    echo(pf(result.data))
    return result


@cli.command()
@pass_plug
@click.option(
    "--count",
    type=click.IntRange(min=0),
    default=0,
    help="Number of polls, 0 is forever.",
)
@click.option(
    "--interval",
    type=click.IntRange(min=DeviceConfig.MIN_POLL_INTERVAL),
    default=None,
    help="Seconds between polls, defaults to the configured poll interval.",
)
async def poll(plug: TapoPlug, count: int, interval: int | None):
    """Poll the plug the way a home automation host would.

    Only the results of the last poll are returned for the json output.
    """
    if interval is None:
        interval = plug.config.poll_interval
    results: dict[str, CommandResult | None] = {}
    iteration = 0
    while not count or iteration < count:
        if iteration:
            await asyncio.sleep(interval)
        iteration += 1
        results = await plug.update()
        for name, result in results.items():
            if result is None:
                continue
            if result.ok:
                echo(f"{name}: {pf(result.data)}")
            else:
                echo(f"{name}: failed: {result.error}")
                if result.persistent_fault:
                    echo("The device keeps failing, it may need a factory reset.")
    return results
