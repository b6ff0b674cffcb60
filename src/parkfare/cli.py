# File: src/parkfare/cli.py
"""
Command line entry point for the pricing engine

Commands:
    quote REQUEST.json [--rules RULES.json]   price a booking request
    review-rule RULE.json [--rules RULES.json] validate a rule against a rule set
    suggest-rules --operator-type TYPE        list standard rules for an operator
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

import click
from pydantic import ValidationError

from .domain.models import DomainValidationError
from .application.dtos import DiscountRuleDTO
from .application.pricing_service import PricingService, PricingServiceFactory, PricingServiceError
from .infrastructure.factories import DiscountRuleFactory, OperatorType


def setup_logging(level: str = "WARNING") -> logging.Logger:
    """Setup application logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )
    return logging.getLogger("parkfare")


def _read_json(path: Path) -> Any:
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


def _build_service(rules_path: Optional[Path], timezone: Optional[str]) -> PricingService:
    config = {"local_timezone": timezone} if timezone else {}
    service = PricingServiceFactory.create_service_with_config(config)

    if rules_path is not None:
        rules = _read_json(rules_path)
        if isinstance(rules, dict):
            rules = rules.get("rules", [])
        service.load_discount_rules(rules)
    return service


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging level",
)
def main(log_level: str) -> None:
    """Parking booking pricing, discount and VAT calculator."""
    setup_logging(log_level)


@main.command()
@click.argument("request", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--rules",
    "rules_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON list of discount rules replacing the statutory defaults",
)
@click.option("--timezone", help="IANA timezone used for peak and night hours")
def quote(request: Path, rules_path: Optional[Path], timezone: Optional[str]) -> None:
    """Price the booking described in REQUEST."""
    logger = logging.getLogger("parkfare")
    try:
        service = _build_service(rules_path, timezone)
        result = service.quote_booking(_read_json(request))
    except (PricingServiceError, DomainValidationError, ValidationError, json.JSONDecodeError) as e:
        logger.error(f"Quote failed: {e}")
        raise click.ClickException(str(e)) from e

    click.echo(result.to_json(indent=2))


@main.command("review-rule")
@click.argument("rule", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--rules",
    "rules_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON list of existing discount rules to check for conflicts",
)
def review_rule(rule: Path, rules_path: Optional[Path]) -> None:
    """Validate the discount rule in RULE and report conflicts."""
    try:
        service = _build_service(rules_path, None)
        review = service.review_discount_rule(_read_json(rule))
    except (PricingServiceError, DomainValidationError, ValidationError, json.JSONDecodeError) as e:
        raise click.ClickException(str(e)) from e

    click.echo(json.dumps(review, indent=2))
    if not review["is_valid"]:
        sys.exit(1)


@main.command("suggest-rules")
@click.option(
    "--operator-type",
    type=click.Choice([t.value for t in OperatorType]),
    required=True,
    help="Kind of parking operator",
)
@click.option("--target", "targets", multiple=True, help="Target customer group, e.g. students")
def suggest_rules(operator_type: str, targets: Tuple[str, ...]) -> None:
    """Print the standard discount rules for an operator as JSON."""
    rules = DiscountRuleFactory().suggest_rules(operator_type, targets)
    payload = [DiscountRuleDTO.from_domain(r).to_dict(by_alias=True, exclude={"id"}) for r in rules]
    click.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
