#!/usr/bin/env python
"""
propwatch command line client

Usage examples:
    propwatch login --username acme
    propwatch upload listings.csv --map withdrawn_date="Date Withdrawn" --scan
    propwatch reports --status suspicious --min-confidence 0.7
    propwatch verify-high
"""

import argparse
import getpass
import logging
import sys
from typing import Dict, List, Optional

from propwatch.api_client import RemoteServiceClient
from propwatch.column_mapping import FIELD_KEYS, FIELD_LABELS, rank_headers
from propwatch.config_loader import load_config
from propwatch.errors import AuthError, PropwatchError, ValidationError
from propwatch.ingestion import IngestionPipeline, SourceFile, import_from_alto, trigger_fraud_scan
from propwatch.reference_data import ReferenceDatasets
from propwatch.session_store import SessionStore, sign_in, sign_up
from propwatch.stats import fetch_stats, status_breakdown
from propwatch.token_store import TokenStore
from propwatch.verification import (
    STATUS_FILTERS,
    STATUS_LABELS,
    ReportFilter,
    ReportView,
    VerificationCoordinator,
    confidence_band,
)


class App:
    """Wires config, session and client together for one CLI invocation."""

    def __init__(self, cfg: dict):
        self.cfg = cfg
        self.session = SessionStore(TokenStore(cfg["session"]["token_file"]))
        self.client = RemoteServiceClient(self.session, cfg["api"]["base_url"], cfg["api"]["timeout"])

    def require_session(self):
        session = self.session.restore(self.client)
        if not self.session.is_authenticated:
            raise AuthError("Not logged in")
        return session


def _parse_overrides(pairs: List[str]) -> Dict[str, str]:
    overrides = {}
    for pair in pairs or []:
        key, sep, header = pair.partition("=")
        if not sep:
            raise ValidationError(f"Expected FIELD=VALUE, got: {pair}")
        overrides[key.strip()] = header
    return overrides


def _print_reports(reports, cfg: dict):
    if not reports:
        print("No reports found matching your filters.")
        return
    high = cfg["reports"]["high_confidence"]
    medium = cfg["reports"]["medium_confidence"]
    for r in reports:
        price = f"£{r.official_record_price:,.0f}" if r.official_record_price else "-"
        band = confidence_band(r.confidence_score, high, medium)
        print(
            f"  [{r.id}] {r.property_address} | {r.client_name} | "
            f"{r.confidence_score * 100:.0f}% ({band}) | {r.risk_level or '-'} | "
            f"{STATUS_LABELS.get(r.verification_status, r.verification_status)} | {price}"
        )


def cmd_login(app: App, args) -> int:
    password = args.password or getpass.getpass("Password: ")
    session = sign_in(app.client, app.session, args.username, password)
    print(f"✅ Logged in as {session.agency_name}")
    return 0


def cmd_signup(app: App, args) -> int:
    password = args.password or getpass.getpass("Password: ")
    sign_up(app.client, args.name, args.username, password)
    print("✅ Account created successfully! Please login.")
    return 0


def cmd_logout(app: App, args) -> int:
    app.session.restore(app.client)
    app.session.logout(app.client)
    print("👋 Logged out")
    return 0


def cmd_whoami(app: App, args) -> int:
    session = app.require_session()
    print(f"🏢 {session.agency_name} (agency id: {session.agency_id})")
    return 0


def cmd_stats(app: App, args) -> int:
    app.require_session()
    stats = fetch_stats(app.client)
    print(f"🏠 Total listings:     {stats.total_listings:,}")
    print(f"⚠️  Suspicious matches: {stats.suspicious_matches:,}")
    print(f"🚨 Confirmed fraud:    {stats.confirmed_fraud:,}")
    print(f"💷 Potential savings:  £{stats.potential_savings:,.0f}")
    for name, value in status_breakdown(stats):
        print(f"  - {name}: {value:,}")
    return 0


def cmd_upload(app: App, args) -> int:
    app.require_session()
    pipeline = IngestionPipeline(app.client)
    state = pipeline.accept_file(SourceFile.from_path(args.file))
    print(f"📄 {state.file.filename}: {len(state.headers)} columns")

    for key, header in _parse_overrides(args.map).items():
        state = pipeline.set_mapping(key, header)

    mapping = state.mapping_dict()
    for key in FIELD_KEYS:
        if mapping.get(key):
            print(f"  ✓ {FIELD_LABELS[key]} ← {mapping[key]}")
        else:
            suggestions = ", ".join(rank_headers(key, state.headers, limit=3))
            print(f"  ✗ {FIELD_LABELS[key]} not mapped (closest columns: {suggestions})")

    try:
        done = pipeline.submit()
    except ValidationError as e:
        print(f"❌ {e}")
        print("   Use --map field=Column to set the missing fields")
        return 1
    print(f"✅ {done.stats.records_processed:,} records processed, {done.stats.records_skipped:,} skipped")
    if done.stats.message:
        print(f"   {done.stats.message}")

    if args.scan:
        print("🔍 Running fraud scan...")
        pipeline.run_fraud_scan()
        print("✅ Fraud scan completed successfully!")
    return 0


def cmd_scan(app: App, args) -> int:
    app.require_session()
    print("🔍 Running fraud scan...")
    trigger_fraud_scan(app.client)
    print("✅ Fraud scan completed successfully!")
    return 0


def cmd_import_alto(app: App, args) -> int:
    app.require_session()
    result = import_from_alto(app.client)
    print(f"✅ Imported {result.imported:,} listings from Alto")
    for message in result.errors:
        print(f"  ⚠️ {message}")
    return 0


def cmd_listings(app: App, args) -> int:
    app.require_session()
    listings = app.client.list_listings()
    print(f"🏠 {len(listings)} listings")
    for listing in listings:
        print(f"  [{listing.id}] {listing.address}, {listing.postcode} | {listing.client_name} | "
              f"{listing.status} | withdrawn {listing.withdrawn_date or '-'}")
    return 0


def cmd_delete_listing(app: App, args) -> int:
    app.require_session()
    app.client.delete_listing(args.id)
    print(f"🗑️ Deleted listing {args.id}")
    return 0


def cmd_update_listing(app: App, args) -> int:
    app.require_session()
    fields = _parse_overrides(args.set)
    if not fields:
        raise ValidationError("Nothing to update, pass --set field=value")
    listing = app.client.update_listing(args.id, **fields)
    print(f"✅ Updated listing {listing.id}: {listing.address}, {listing.postcode} ({listing.status})")
    return 0


def cmd_alto_agencies(app: App, args) -> int:
    app.require_session()
    for agency in app.client.list_alto_agencies():
        print(f"  [{agency.id}] {agency.name} ({agency.username}) ref={agency.alto_agency_ref or '-'} "
              f"env={agency.alto_env} status={agency.alto_status}")
    return 0


def cmd_alto_settings(app: App, args) -> int:
    app.require_session()
    app.client.update_alto_settings(args.id, args.ref, args.enable_production)
    print("✅ Agency Alto settings updated")
    return 0


def _report_view(app: App, args) -> ReportView:
    view = ReportView(
        app.client,
        limit=app.cfg["reports"]["limit"],
        high_confidence=app.cfg["reports"]["high_confidence"],
        report_filter=ReportFilter(args.status, args.min_confidence),
    )
    view.refresh()
    return view


def cmd_reports(app: App, args) -> int:
    app.require_session()
    view = _report_view(app, args)
    _print_reports(view.reports, app.cfg)
    return 0


def cmd_verify(app: App, args) -> int:
    app.require_session()
    result = VerificationCoordinator(app.client).verify(args.ids)
    print(f"✅ Verification complete: {result.confirmed_fraud} confirmed fraud, "
          f"{result.not_fraud} cleared, {result.errors} errors.")
    return 0


def cmd_verify_high(app: App, args) -> int:
    app.require_session()
    view = _report_view(app, args)
    candidates = view.high_confidence_candidates()
    if not candidates:
        print("ℹ️ No high confidence suspicious matches to verify.")
        return 0
    if not args.yes:
        answer = input(f"Verify {len(candidates)} high confidence matches? This will check Land Registry records. [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Cancelled")
            return 0
    result = view.verify_high_confidence()
    print(f"✅ Verification complete: {result.confirmed_fraud} confirmed fraud, {result.not_fraud} cleared.")
    return 0


def cmd_ppd_upload(app: App, args) -> int:
    app.require_session()
    datasets = ReferenceDatasets(app.client, app.cfg["reference_data"]["min_year"], app.cfg["reference_data"]["max_year"])
    datasets.upload(args.year, args.month, SourceFile.from_path(args.file))
    print("✅ Official Records file uploaded and processing started.")
    return 0


def cmd_ppd_jobs(app: App, args) -> int:
    app.require_session()
    jobs = ReferenceDatasets(app.client).list_jobs()
    if not jobs:
        print("No uploads yet")
        return 0
    for job in jobs:
        uploaded = job.uploaded_at.date().isoformat() if job.uploaded_at else "-"
        period = f"{job.source_year}-{job.source_month:02d}" if job.source_month else str(job.source_year)
        line = f"  [{job.id}] {uploaded} {job.filename} ({period}) {job.status} {job.records_processed:,} records"
        if job.error_message:
            line += f" ❌ {job.error_message}"
        print(line)
    return 0


def cmd_ppd_delete(app: App, args) -> int:
    app.require_session()
    ReferenceDatasets(app.client).delete_job(args.id)
    print(f"🗑️ Deleted upload {args.id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="propwatch", description="Property listing fraud detection client")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="log in as an agency")
    p.add_argument("--username", required=True)
    p.add_argument("--password")
    p.set_defaults(func=cmd_login)

    p = sub.add_parser("signup", help="create an agency account")
    p.add_argument("--name", required=True, help="agency name")
    p.add_argument("--username", required=True)
    p.add_argument("--password")
    p.set_defaults(func=cmd_signup)

    sub.add_parser("logout").set_defaults(func=cmd_logout)
    sub.add_parser("whoami").set_defaults(func=cmd_whoami)
    sub.add_parser("stats", help="agency dashboard numbers").set_defaults(func=cmd_stats)

    p = sub.add_parser("upload", help="upload a listings CSV")
    p.add_argument("file")
    p.add_argument("--map", action="append", metavar="FIELD=COLUMN", help="override a column mapping")
    p.add_argument("--scan", action="store_true", help="run a fraud scan after a successful upload")
    p.set_defaults(func=cmd_upload)

    sub.add_parser("scan", help="run a fraud scan").set_defaults(func=cmd_scan)
    sub.add_parser("import-alto", help="import listings from Alto").set_defaults(func=cmd_import_alto)
    sub.add_parser("listings").set_defaults(func=cmd_listings)

    p = sub.add_parser("update-listing")
    p.add_argument("id")
    p.add_argument("--set", action="append", metavar="FIELD=VALUE", help="field to change")
    p.set_defaults(func=cmd_update_listing)

    p = sub.add_parser("delete-listing")
    p.add_argument("id")
    p.set_defaults(func=cmd_delete_listing)

    for name, func in (("reports", cmd_reports), ("verify-high", cmd_verify_high)):
        p = sub.add_parser(name)
        p.add_argument("--status", choices=STATUS_FILTERS, default="all")
        p.add_argument("--min-confidence", type=float, default=0.0)
        if name == "verify-high":
            p.add_argument("-y", "--yes", action="store_true", help="do not ask for confirmation")
        p.set_defaults(func=func)

    p = sub.add_parser("verify", help="verify matches against official records")
    p.add_argument("ids", nargs="+")
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("ppd-upload", help="upload official price paid data")
    p.add_argument("file")
    p.add_argument("--year", type=int, required=True)
    p.add_argument("--month", type=int, required=True)
    p.set_defaults(func=cmd_ppd_upload)

    sub.add_parser("alto-agencies", help="Alto integration per agency").set_defaults(func=cmd_alto_agencies)

    p = sub.add_parser("alto-settings", help="set an agency's production Alto reference")
    p.add_argument("id")
    p.add_argument("--ref", help="Alto agency reference")
    p.add_argument("--enable-production", action="store_true")
    p.set_defaults(func=cmd_alto_settings)

    sub.add_parser("ppd-jobs", help="list official data uploads").set_defaults(func=cmd_ppd_jobs)

    p = sub.add_parser("ppd-delete")
    p.add_argument("id")
    p.set_defaults(func=cmd_ppd_delete)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App(load_config())
    try:
        return args.func(app, args)
    except AuthError as e:
        print(f"🔒 {e}")
        print("   Run `propwatch login` to start a new session")
        return 2
    except PropwatchError as e:
        print(f"❌ {e}")
        return 1
    except OSError as e:
        print(f"❌ Could not read file: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
