from botocore.exceptions import BotoCoreError

from facerec_deploy.errors import ConfigError, ProvisionError
from facerec_deploy.models.result import OrchestrationResult, to_json
from facerec_deploy.services.artifact_builder import package_directory, run_build
from facerec_deploy.services.config_resolver import resolve_config, resolve_region
from facerec_deploy.services.orchestrator import ProvisioningOrchestrator
from facerec_deploy.session import create_clients
from facerec_deploy.utils.s3_handler import S3Handler
from pathlib import Path
import argparse
import json
import logging
import os
import sys

logger = logging.getLogger("facerec_deploy")

DEFAULT_PUBLISH_DIR = "dist"
ARTIFACT_NAME = "lambda.zip"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # botocore is very chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)


def _write(payload: str, output: str = None) -> None:
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(payload)
        logger.info(f"Wrote result to {output}")
    else:
        print(payload)


def _env(args):
    # --region wins over AWS_REGION for the whole run
    if args.region:
        return {**os.environ, "AWS_REGION": args.region}
    return os.environ


def _clients(args):
    return create_clients(profile=args.profile, region=resolve_region(_env(args)))


def _prepare_artifact(args) -> str:
    """Run the optional build command, then zip the publish dir unless a zip was given."""
    if args.build_cmd:
        run_build(args.build_cmd, cwd=args.project_dir)
    if args.artifact:
        return args.artifact
    publish_dir = Path(args.project_dir or ".") / args.publish_dir
    zip_path = publish_dir / ARTIFACT_NAME
    return str(package_directory(publish_dir, zip_path))


def deploy(args) -> int:
    """
    provision buckets, role, function and trigger; print the run result
    """
    try:
        artifact = _prepare_artifact(args)
    except ProvisionError as e:
        logger.error(f"Could not prepare function artifact: {e}")
        return 1

    try:
        clients = _clients(args)
    except BotoCoreError as e:
        # bad profile or unreadable AWS config; nothing was touched yet
        result = OrchestrationResult().fail("config", ConfigError(f"Could not set up AWS session: {e}"))
    else:
        orchestrator = ProvisioningOrchestrator(clients, env=_env(args))
        result = orchestrator.run(artifact)
    _write(to_json(result, pretty=args.pretty), args.output)

    if not result.ok:
        logger.error(f"FAILED at step '{result.failed_step}': {result.error['message']}")
    else:
        cfg = orchestrator.config
        logger.info("Done. Next step (test): facerec-deploy verify <image>")
        logger.info(f"Upload images to s3://{cfg.in_bucket}, results land in s3://{cfg.out_bucket}")
    return result.exit_code


def show_config(args) -> int:
    """
    resolve and print the configuration without touching any resource
    """
    try:
        clients = _clients(args)
        config = resolve_config(clients.sts, _env(args))
    except (ProvisionError, BotoCoreError) as e:
        logger.error(str(e))
        return 1
    _write(config.to_json(pretty=True))
    return 0


def verify(args) -> int:
    """
    upload an image to the inbound bucket and wait for the JSON result
    """
    image = Path(args.image)
    if not image.is_file():
        logger.error(f"Image not found: {image}")
        return 2
    try:
        clients = _clients(args)
        config = resolve_config(clients.sts, _env(args))
        s3 = S3Handler(region_name=config.region, client=clients.s3)
        key = image.name
        s3.upload_file(str(image), config.in_bucket, key, content_type="image/jpeg")
        result_key = f"{key}.json"
        logger.info(f"Waiting for s3://{config.out_bucket}/{result_key} ...")
        s3.wait_for_object(config.out_bucket, result_key, timeout=args.timeout)
        data = s3.get_json(config.out_bucket, result_key)
    except (ProvisionError, BotoCoreError) as e:
        logger.error(str(e))
        return 1
    _write(json.dumps(data, indent=2, default=str))
    return 0


def _add_aws_args(p) -> None:
    p.add_argument("--profile", default=None, help="AWS profile name")
    p.add_argument("--region", default=None, help="AWS region (default: AWS_REGION or us-east-1)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='facerec-deploy',
        description='Provision the S3 -> Lambda -> S3 face recognition pipeline '
        '          (idempotent, safe to re-run after a failure)'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands'
    )

    deploy_parser = subparsers.add_parser(
        'deploy',
        help='Create or update buckets, IAM role/policy, Lambda and S3 trigger'
    )
    _add_aws_args(deploy_parser)
    source = deploy_parser.add_mutually_exclusive_group()
    source.add_argument('--artifact', help='Ready-made Lambda zip to deploy')
    source.add_argument(
        '--publish-dir',
        default=DEFAULT_PUBLISH_DIR,
        help=f'Directory to zip as the Lambda package (default: {DEFAULT_PUBLISH_DIR})'
    )
    deploy_parser.add_argument(
        '--build-cmd',
        help='External build command run first, e.g. "dotnet publish -c Release -o dist"'
    )
    deploy_parser.add_argument('--project-dir', default=None, help='Working directory for the build')
    deploy_parser.add_argument('--output', '-o', help='Write the run result JSON to this file')
    deploy_parser.add_argument('--pretty', action='store_true', help='Pretty-print JSON')
    deploy_parser.set_defaults(func=deploy)

    config_parser = subparsers.add_parser(
        'show-config',
        help='Print the resolved configuration (names, region, account)'
    )
    _add_aws_args(config_parser)
    config_parser.set_defaults(func=show_config)

    verify_parser = subparsers.add_parser(
        'verify',
        help='Upload a sample image and wait for the recognition result'
    )
    _add_aws_args(verify_parser)
    verify_parser.add_argument('image', help='Path to a .jpg/.png image')
    verify_parser.add_argument('--timeout', type=int, default=60, help='Seconds to wait for the result')
    verify_parser.set_defaults(func=verify)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    _configure_logging(getattr(args, 'verbose', False))

    # execute the passed function
    sys.exit(args.func(args))


if __name__ == '__main__':
    main()
