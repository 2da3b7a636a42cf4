import asyncio
import functools
import json
import logging

import click
from jwcrypto import jwk
from jwcrypto.common import JWException
from rich.console import Console
from rich.table import Table

from civic_wallet.icp.config import CivicWalletConfig
from civic_wallet.icp.exceptions.domain.authn import (
    AuthenticationFailedError,
    InvalidPrincipalError,
)
from civic_wallet.icp.exceptions.domain.issuer import (
    CredentialDeserializationError,
    CredentialValidationError,
    IssuerBackendError,
    IssuerRpcError,
)
from civic_wallet.icp.lib.auth.client import LoopbackAuthClient
from civic_wallet.icp.services.application.proof_exchange import (
    ProofExchangeOrchestrator,
)
from civic_wallet.icp.services.domain.authn import PrincipalService
from civic_wallet.icp.services.domain.civic_sign import CivicSignService
from civic_wallet.icp.services.domain.credential import CredentialService
from civic_wallet.icp.services.domain.signer import (
    EthereumProofSigner,
    JWSProofSigner,
)
from civic_wallet.icp.value_objects.application.proof_exchange import (
    ProofExchangeStates,
)
from civic_wallet.icp.value_objects.domain.authn import Principal
from civic_wallet.icp.value_objects.domain.credential import (
    ArgumentValue,
    ArgumentValueTags,
    CredentialSpec,
    SignedIdAlias,
    StoredCredential,
)

console = Console()


class AppLogger:
    def __init__(self, name: str, level: int = logging.DEBUG):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(level)
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - [%(filename)s:%(lineno)d] - %(levelname)s - %(message)s"
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)


def coro(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(fn(*args, **kwargs))
        except (
            AuthenticationFailedError,
            CredentialDeserializationError,
            CredentialValidationError,
            InvalidPrincipalError,
            IssuerBackendError,
            IssuerRpcError,
        ) as e:
            raise click.ClickException(f"{type(e).__name__}: {e}")

    return wrapper


def parse_principal(ctx, param, value):
    try:
        return Principal.from_text(value)
    except InvalidPrincipalError as e:
        raise click.BadParameter(str(e))


def parse_arguments(ctx, param, values):
    arguments = {}
    for value in values:
        name, sep, raw = value.partition("=")
        if not sep:
            raise click.BadParameter(f"Expected name=value, got {value!r}")
        try:
            number = int(raw)
        except ValueError:
            arguments[name] = ArgumentValue(ArgumentValueTags.String, raw)
            continue
        try:
            arguments[name] = ArgumentValue(ArgumentValueTags.Int, number)
        except CredentialValidationError as e:
            raise click.BadParameter(f"{name}: {e}")
    return arguments or None


def credential_service(ctx: click.Context) -> CredentialService:
    config: CivicWalletConfig = ctx.obj["config"]
    if not config.issuer_rpc_endpoint:
        raise click.UsageError("--issuer-rpc-endpoint or ISSUER_RPC_ENDPOINT is required")
    return CredentialService(
        issuer_rpc_endpoint=config.issuer_rpc_endpoint,
        access_token=ctx.obj["issuer_access_token"],
        timeout=config.request_timeout,
        logger=ctx.obj["logger"],
    )


def principal_service(ctx: click.Context) -> PrincipalService:
    config: CivicWalletConfig = ctx.obj["config"]
    if not config.identity_provider_url:
        raise click.UsageError(
            "--identity-provider-url or IDENTITY_PROVIDER_URL is required"
        )
    logger = ctx.obj["logger"]
    return PrincipalService(
        identity_provider_url=config.identity_provider_url,
        auth_client=LoopbackAuthClient(timeout=config.login_timeout, logger=logger),
        logger=logger,
    )


@click.group()
@click.option("--identity-provider-url", envvar="IDENTITY_PROVIDER_URL")
@click.option("--issuer-rpc-endpoint", envvar="ISSUER_RPC_ENDPOINT")
@click.option("--issuer-access-token", envvar="ISSUER_ACCESS_TOKEN")
@click.option("--civic-sign-api-url", envvar="CIVIC_SIGN_API_URL")
@click.option("--civic-sign-stage", envvar="CIVIC_SIGN_STAGE", default="dev")
@click.option("--network", envvar="CIVIC_SIGN_NETWORK", default="")
@click.option("--retry-interval", envvar="RETRY_INTERVAL", default=2.0, type=float)
@click.option("--retry-attempts", envvar="RETRY_ATTEMPTS", default=20, type=int)
@click.option("--request-timeout", envvar="REQUEST_TIMEOUT", default=10.0, type=float)
@click.option("--login-timeout", envvar="LOGIN_TIMEOUT", default=300.0, type=float)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Set the log level",
)
@click.pass_context
def main(
    ctx,
    identity_provider_url,
    issuer_rpc_endpoint,
    issuer_access_token,
    civic_sign_api_url,
    civic_sign_stage,
    network,
    retry_interval,
    retry_attempts,
    request_timeout,
    login_timeout,
    log_level,
):
    level: int = getattr(logging, log_level.upper())
    ctx.ensure_object(dict)
    ctx.obj["logger"] = AppLogger("civic_wallet", level=level).logger
    ctx.obj["issuer_access_token"] = issuer_access_token
    ctx.obj["config"] = CivicWalletConfig(
        identity_provider_url=identity_provider_url,
        issuer_rpc_endpoint=issuer_rpc_endpoint,
        civic_sign_api_url=civic_sign_api_url,
        civic_sign_stage=civic_sign_stage,
        network=network,
        retry_interval=retry_interval,
        retry_attempts=retry_attempts,
        request_timeout=request_timeout,
        login_timeout=login_timeout,
    )


@main.command()
@click.pass_context
@coro
async def login(ctx):
    principal = await principal_service(ctx).request_principal()
    console.print(f"Logged in as [bold]{principal}[/bold] ({principal.to_did()})")


@main.command()
@click.option("--eth-private-key", envvar="ETH_PRIVATE_KEY")
@click.option("--jwk-file", type=click.File("r"))
@click.pass_context
@coro
async def authenticate(ctx, eth_private_key, jwk_file):
    config: CivicWalletConfig = ctx.obj["config"]
    if eth_private_key:
        try:
            signer = EthereumProofSigner(eth_private_key)
        except (TypeError, ValueError) as e:
            raise click.BadParameter(str(e), param_hint="--eth-private-key")
    elif jwk_file:
        try:
            signer = JWSProofSigner(jwk.JWK.from_json(jwk_file.read()))
        except (JWException, ValueError) as e:
            raise click.BadParameter(str(e), param_hint="--jwk-file")
    else:
        raise click.UsageError("Either --eth-private-key or --jwk-file is required")
    if not config.civic_sign_api_url:
        raise click.UsageError("--civic-sign-api-url or CIVIC_SIGN_API_URL is required")

    logger = ctx.obj["logger"]
    orchestrator = ProofExchangeOrchestrator(
        principal_service=principal_service(ctx),
        civic_sign_service=CivicSignService(
            nonce_endpoint=config.nonce_endpoint,
            authenticate_endpoint=config.authenticate_endpoint,
            timeout=config.request_timeout,
            logger=logger,
        ),
        signer=signer,
        network=config.network,
        retry_interval=config.retry_interval,
        retry_attempts=config.retry_attempts,
        logger=logger,
    )
    result = await orchestrator.run()
    if result.state is not ProofExchangeStates.TokenObtained:
        raise click.ClickException(
            f"Authentication failed ({result.failure_reason.value}): {result.error}"
        )
    console.print(f"Proof: {result.proof.proof}")
    console.print(f"Authentication token: [bold green]{result.token}[/bold green]")


@main.command("add-credential")
@click.argument("principal", callback=parse_principal)
@click.argument("credential_file", type=click.File("r"))
@click.pass_context
@coro
async def add_credential(ctx, principal, credential_file):
    credential = StoredCredential.from_json(credential_file.read())
    credential_id = await credential_service(ctx).add_credential(principal, credential)
    console.print(f"Credential [bold]{credential_id}[/bold] added for {principal}")


@main.command()
@click.argument("principal", callback=parse_principal)
@click.pass_context
@coro
async def credentials(ctx, principal):
    stored = await credential_service(ctx).get_credentials(principal)
    table = Table(title=f"Credentials for {principal}")
    table.add_column("id")
    table.add_column("type")
    table.add_column("issuer")
    table.add_column("claims")
    for credential in stored:
        table.add_row(
            credential.id,
            ", ".join(credential.type_),
            credential.issuer,
            json.dumps([claim.to_subject() for claim in credential.claim]),
        )
    console.print(table)


@main.command("remove-credential")
@click.argument("principal", callback=parse_principal)
@click.argument("credential_id")
@click.pass_context
@coro
async def remove_credential(ctx, principal, credential_id):
    message = await credential_service(ctx).remove_credential(principal, credential_id)
    console.print(message)


@main.command()
@click.option("--alias-jws", required=True, help="Signed id alias from the identity provider")
@click.option("--credential-type", required=True)
@click.option("--arg", "arguments", multiple=True, callback=parse_arguments)
@click.pass_context
@coro
async def issue(ctx, alias_jws, credential_type, arguments):
    issued = await credential_service(ctx).issue_credential(
        SignedIdAlias(credential_jws=alias_jws),
        CredentialSpec(credential_type=credential_type, arguments=arguments),
    )
    decoded = issued.decode()
    console.print(f"Verifiable credential: {issued.vc_jws}")
    console.print_json(json.dumps(decoded.claims))


@main.command("derivation-origin")
@click.argument("frontend_hostname")
@click.pass_context
@coro
async def derivation_origin(ctx, frontend_hostname):
    origin = await credential_service(ctx).derivation_origin(frontend_hostname)
    console.print(origin)


if __name__ == "__main__":
    main()
