from typing import List, Tuple

from propwatch.models import AgencyStats


def fetch_stats(client) -> AgencyStats:
    return client.agency_stats()


def status_breakdown(stats: AgencyStats) -> List[Tuple[str, int]]:
    """Suspicious / confirmed / cleared split of all listings, zero slices dropped."""
    cleared = stats.total_listings - stats.suspicious_matches - stats.confirmed_fraud
    slices = [
        ("Suspicious", stats.suspicious_matches),
        ("Confirmed Fraud", stats.confirmed_fraud),
        ("Cleared", cleared),
    ]
    return [(name, value) for name, value in slices if value > 0]
