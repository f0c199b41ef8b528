import pytest
from yarl import URL

from code_runner.models import (
    BlockedAddressError,
    GuardedResolver,
    TargetValidator,
    ValidationStatus,
    is_blocked_address,
)
from tests.conftest import PUBLIC_ADDRESS, StaticResolver


@pytest.mark.parametrize(
    ("address", "blocked"),
    [
        ("127.0.0.1", True),
        ("127.255.0.9", True),
        ("10.1.2.3", True),
        ("172.16.0.1", True),
        ("172.31.255.255", True),
        ("172.32.0.1", False),
        ("192.168.1.1", True),
        ("169.254.169.254", True),
        ("0.0.0.0", True),
        ("8.8.8.8", False),
        (PUBLIC_ADDRESS, False),
        ("::1", True),
        ("::", True),
        ("fe80::1", True),
        ("fd12:3456::1", True),
        ("::ffff:10.0.0.1", True),
        ("::ffff:127.0.0.1", True),
        ("::ffff:8.8.8.8", False),
        ("2606:4700:4700::1111", False),
        ("not-an-address", True),
    ],
)
def test_is_blocked_address(address: str, blocked: bool) -> None:
    assert is_blocked_address(address) is blocked


@pytest.mark.asyncio
async def test_rejects_non_http_scheme(validator: TargetValidator) -> None:
    outcome = await validator.validate(URL("ftp://public.test/file"))

    assert outcome.status == ValidationStatus.BAD_SCHEME
    assert outcome.message == "Protocol 'ftp:' is not allowed. Only http: and https: are permitted"


@pytest.mark.asyncio
async def test_accepts_public_host_with_all_addresses(validator: TargetValidator) -> None:
    outcome = await validator.validate(URL("https://public.test/page"))

    assert outcome.status == ValidationStatus.OK
    assert outcome.target is not None
    assert outcome.target.hostname == "public.test"
    assert PUBLIC_ADDRESS in outcome.target.addresses
    assert len(outcome.target.addresses) == 2


@pytest.mark.asyncio
async def test_one_blocked_address_disqualifies_host(validator: TargetValidator) -> None:
    outcome = await validator.validate(URL("http://mixed.test/"))

    assert outcome.status == ValidationStatus.BLOCKED_ADDRESS
    assert outcome.offending_address == "10.0.0.5"
    assert outcome.message == "The resolved address for 'mixed.test' is not allowed"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    [
        "http://127.0.0.1/",
        "http://[::1]:8080/",
        "http://169.254.169.254/latest/meta-data/",
        "http://loopback6.test/",
        "http://mapped.test/",
        "http://metadata.test/",
    ],
)
async def test_blocks_private_destinations(validator: TargetValidator, url: str) -> None:
    outcome = await validator.validate(URL(url))

    assert outcome.status == ValidationStatus.BLOCKED_ADDRESS


@pytest.mark.asyncio
async def test_ip_literal_is_not_sent_to_resolver() -> None:
    validator = TargetValidator(resolver=StaticResolver({}))

    outcome = await validator.validate(URL(f"http://{PUBLIC_ADDRESS}/"))

    assert outcome.status == ValidationStatus.OK
    assert outcome.target.addresses == (PUBLIC_ADDRESS,)


@pytest.mark.asyncio
async def test_unresolvable_host_is_dns_failure(validator: TargetValidator) -> None:
    outcome = await validator.validate(URL("http://nowhere.test/"))

    assert outcome.status == ValidationStatus.DNS_FAILURE
    assert outcome.message == "DNS lookup failed for 'nowhere.test'"


@pytest.mark.asyncio
async def test_empty_answer_is_dns_failure() -> None:
    validator = TargetValidator(resolver=StaticResolver({"empty.test": []}))

    outcome = await validator.validate(URL("http://empty.test/"))

    assert outcome.status == ValidationStatus.DNS_FAILURE


@pytest.mark.asyncio
async def test_guarded_resolver_refuses_blocked_answers() -> None:
    resolver = GuardedResolver(StaticResolver({"evil.test": [PUBLIC_ADDRESS, "127.0.0.1"]}))

    with pytest.raises(BlockedAddressError) as exc_info:
        await resolver.resolve("evil.test", 80)

    assert exc_info.value.address == "127.0.0.1"
    assert exc_info.value.message == "The resolved address for 'evil.test' is not allowed"


@pytest.mark.asyncio
async def test_guarded_resolver_passes_public_answers() -> None:
    resolver = GuardedResolver(StaticResolver({"good.test": [PUBLIC_ADDRESS]}))

    results = await resolver.resolve("good.test", 443)

    assert [result["host"] for result in results] == [PUBLIC_ADDRESS]
    assert results[0]["port"] == 443
