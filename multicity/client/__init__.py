"""Remote flight search API clients."""

from multicity.client.seeru import SeeruClient, parse_flight, parse_result_page

__all__ = ["SeeruClient", "parse_flight", "parse_result_page"]
