"""Tests for the geoip2-backed resolver."""

import geoip2.errors
import maxminddb

from modloot.core.geo import GeoInfo, GeoResolver


class _Reader:
    def __init__(self, error):
        self.error = error

    def city(self, ip):
        raise self.error


def _resolver(error) -> GeoResolver:
    resolver = GeoResolver()
    resolver._reader = _Reader(error)
    return resolver


class TestLookup:
    def test_corrupt_database_resolves_unknown(self):
        resolver = _resolver(maxminddb.InvalidDatabaseError("The MaxMind DB file's data section contains bad data"))
        assert resolver.lookup("41.90.0.1") == GeoInfo.unknown()

    def test_address_not_found(self):
        resolver = _resolver(geoip2.errors.AddressNotFoundError("41.90.0.1 not in database"))
        assert resolver.lookup("41.90.0.1") == GeoInfo.unknown()

    def test_malformed_address(self):
        resolver = _resolver(ValueError("'nope' does not appear to be an IPv4 or IPv6 address"))
        assert resolver.lookup("nope") == GeoInfo.unknown()

    def test_missing_database_file(self, tmp_path):
        resolver = GeoResolver(str(tmp_path / "GeoLite2-City.mmdb"))
        assert resolver.lookup("41.90.0.1").country_code is None

    def test_unknown_ip_skips_reader(self):
        resolver = _resolver(AssertionError("reader should not be called"))
        assert resolver.lookup("unknown") == GeoInfo.unknown()
