"""Number theory helpers over petlib big numbers.

The heavy lifting (modular exponentiation, inversion, primality testing and
random sampling) is done by OpenSSL through ``petlib.bn.Bn``. This module only
adds what ``Bn`` lacks, and the randomness providers used by the scheme.

A randomness provider is any object with a ``randbelow(bound)`` method that
returns a uniform ``Bn`` in the range ``[0, bound)``.

Example:
    >>> gcd(Bn(12), Bn(18))
    6
    >>> r = random_unit(Bn(35))
    >>> 0 < r < 35 and gcd(r, Bn(35)) == 1
    True

"""

import random

from petlib.bindings import _C, _FFI
from petlib.bn import Bn, get_ctx

from .errors import DJTypeError, DomainError, InvalidParameterError

import pytest


def to_bn(num):
    """Coerce a native integer into a ``Bn``. ``Bn`` inputs are returned as is.

    Unlike ``Bn(num)`` this accepts integers of any size.
    """
    if isinstance(num, Bn):
        return num
    if isinstance(num, bool) or not isinstance(num, int):
        raise DJTypeError("Cannot coerce %r into a Bn." % (type(num),))
    return Bn.from_decimal(str(num))


def gcd(a, b):
    """The greatest common divisor of two non-negative numbers."""
    a, b = to_bn(a), to_bn(b)
    while b:
        a, b = b, a % b
    return a


def lcm(a, b):
    """The least common multiple of two positive numbers."""
    a, b = to_bn(a), to_bn(b)
    return (a // gcd(a, b)) * b


def crt(a1, n1, a2, n2):
    """Returns the unique x mod n1 * n2 with x = a1 mod n1 and x = a2 mod n2.

    The two moduli must be co-prime.
    """
    a1, n1, a2, n2 = to_bn(a1), to_bn(n1), to_bn(a2), to_bn(n2)
    if gcd(n1, n2) != 1:
        raise DomainError("CRT moduli are not co-prime")

    h = ((a2 - a1) % n2).mod_mul(n1.mod_inverse(n2), n2)
    return (a1 + n1 * h) % (n1 * n2)


def is_unit(x, n):
    """True if x is an element of the multiplicative group Z_n^*."""
    x, n = to_bn(x), to_bn(n)
    return 0 < x < n and gcd(x, n) == 1


def is_probable_prime(n, certainty):
    """Tests n for primality with error probability at most 2^-certainty.

    Each Miller-Rabin round lets a composite through with probability at most
    1/4, so OpenSSL is asked for ceil(certainty / 2) rounds.
    """
    n = to_bn(n)
    if certainty < 1:
        raise InvalidParameterError("Certainty has to be at least 1.")
    checks = (certainty + 1) // 2

    res = int(_C.BN_is_prime_ex(n.bn, checks, get_ctx().bnctx, _FFI.NULL))
    if res == 0:
        return False
    if res == 1:
        return True
    raise Exception("Primality test failure %s" % res)


def random_prime(bits, certainty, rng=None):
    """Samples a prime of exactly ``bits`` bits with its two top bits set.

    Setting the two top bits guarantees the product of two such primes has
    exactly the sum of their lengths in bits.
    """
    if bits < 2:
        raise InvalidParameterError("Primes need at least 2 bits.")
    rng = rng or default_random

    span = Bn(2) ** (bits - 2)
    base = Bn(3) * span
    while True:
        candidate = base + rng.randbelow(span)
        if not candidate.is_odd():
            candidate = candidate + 1
        if is_probable_prime(candidate, certainty):
            return candidate


def random_unit(n, rng=None):
    """Samples r uniformly from Z_n^*, by rejection from [1, n)."""
    n = to_bn(n)
    rng = rng or default_random
    while True:
        r = rng.randbelow(n)
        if r > 0 and gcd(r, n) == 1:
            return r


class BnRandom(object):
    """ The default randomness provider. It draws from the OpenSSL
    cryptographically secure generator and keeps no state of its own. """

    __slots__ = []

    def randbelow(self, bound):
        """Returns a uniform random number 0 <= rnd < bound."""
        bound = to_bn(bound)
        if bound <= 0:
            raise DomainError("The bound has to be positive.")
        return bound.random()


class SeededRandom(object):
    """ A reproducible randomness provider for tests and benchmarks.

    It is NOT cryptographically secure, never use it to encrypt real data.
    """

    def __init__(self, seed):
        self._rnd = random.Random(seed)

    def randbelow(self, bound):
        bound = to_bn(bound)
        if bound <= 0:
            raise DomainError("The bound has to be positive.")
        return to_bn(self._rnd.randrange(int(bound)))


default_random = BnRandom()


# ---------- Tests ------------


def test_to_bn():
    big = 2**200 + 12345
    assert to_bn(big) == Bn.from_decimal(str(big))
    assert int(to_bn(big)) == big
    assert to_bn(7) == Bn(7)
    assert to_bn(0) == Bn(0)

    x = Bn(5)
    assert to_bn(x) is x

    with pytest.raises(Exception) as excinfo:
        to_bn("100")
    assert 'coerce' in str(excinfo.value)

    with pytest.raises(DJTypeError):
        to_bn(True)


def test_gcd_lcm():
    assert gcd(Bn(12), Bn(18)) == 6
    assert gcd(17, 5) == 1
    assert gcd(Bn(0), Bn(9)) == 9
    assert lcm(Bn(4), Bn(6)) == 12
    assert lcm(2**100, 2**60 * 3) == to_bn(2**100 * 3)


def test_crt():
    x = crt(2, 3, 3, 5)
    assert x == 8

    big1, big2 = to_bn(2**89 - 1), to_bn(2**61 - 1)
    y = crt(1, big1, 0, big2)
    assert y % big1 == 1
    assert y % big2 == 0
    assert y < big1 * big2

    with pytest.raises(Exception) as excinfo:
        crt(1, 4, 0, 6)
    assert 'co-prime' in str(excinfo.value)


def test_is_unit():
    assert is_unit(2, 15)
    assert not is_unit(3, 15)
    assert not is_unit(0, 15)
    assert not is_unit(15, 15)


def test_is_probable_prime():
    assert is_probable_prime(to_bn(2**127 - 1), 40)
    assert is_probable_prime(Bn(7), 1)
    assert not is_probable_prime(to_bn(2**128 + 1), 40)
    # Carmichael number
    assert not is_probable_prime(Bn(561), 40)
    assert not is_probable_prime(Bn(1), 40)

    with pytest.raises(InvalidParameterError):
        is_probable_prime(Bn(7), 0)


def test_random_prime():
    for bits in [8, 64, 129]:
        p = random_prime(bits, 20)
        assert p.num_bits() == bits
        assert p.is_bit_set(bits - 2)
        assert is_probable_prime(p, 40)


def test_random_prime_seeded():
    p1 = random_prime(64, 20, SeededRandom(1))
    p2 = random_prime(64, 20, SeededRandom(1))
    assert p1 == p2


def test_random_unit():
    n = Bn(3 * 5 * 7)
    for _ in range(50):
        r = random_unit(n)
        assert is_unit(r, n)


def test_providers():
    bound = to_bn(2**80)
    for rng in [BnRandom(), SeededRandom(42)]:
        for _ in range(20):
            assert 0 <= rng.randbelow(bound) < bound
        with pytest.raises(DomainError):
            rng.randbelow(Bn(0))

    xs = [SeededRandom(3).randbelow(bound) for _ in range(2)]
    assert xs[0] == xs[1]
