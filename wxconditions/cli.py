from concurrent.futures import TimeoutError as FutureTimeout

from click import ClickException, argument, echo, group, option, pass_context, pass_obj

from .conditions import ConditionsFetcher
from .config import WUNDERGROUND_API_KEY_NAME, settings
from .errors import ConditionsFetchFailed, WeatherAPIError
from .keys import key_manager
from .log import VerbosityLevel


@group()
@option("--verbose", is_flag=True, help="Log connection details to stderr.")
@pass_context
def cli(ctx, verbose):
    ctx.obj = VerbosityLevel.VERBOSE if verbose else VerbosityLevel.OFF


@cli.command(
    help="Print current conditions for LATITUDE LONGITUDE.",
    context_settings=dict(ignore_unknown_options=True),
)
@argument("latitude", type=float)
@argument("longitude", type=float)
@option("--api-key-name", default=WUNDERGROUND_API_KEY_NAME, show_default=True)
@option("--key", envvar="WUNDERGROUND_API_KEY", help="Secret to register under the key name.")
@option("--timeout", type=float, default=None,
        help="Seconds to wait for the result (default: twice the request timeout).")
@pass_obj
def conditions(verbosity, latitude, longitude, api_key_name, key, timeout):
    if key:
        key_manager.register(api_key_name, key)
    else:
        key_manager.load_from_settings(settings)

    try:
        fetcher = ConditionsFetcher(latitude, longitude, None, api_key_name, verbosity)
    except WeatherAPIError as e:
        raise ClickException(str(e))

    try:
        result = fetcher.future.result(timeout=timeout or settings.request_timeout * 2)
    except ConditionsFetchFailed as e:
        raise ClickException(str(e))
    except FutureTimeout:
        raise ClickException("Timed out waiting for conditions.")

    echo(f"Weather:     {result.weather} ({result.icon})")
    echo(f"Temperature: {result.temp_c:g} °C / {result.temp_f:g} °F")
    echo(f"Timezone:    {result.local_tz_short} ({result.local_tz_offset})")
