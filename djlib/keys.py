""" Keys for the Damgard-Jurik scheme, their generation and their transport records.

The public key is the RSA modulus N = p * q. The private key holds the
factorization together with t = lcm(p - 1, q - 1) and the decryption
exponent d, chosen by the Chinese Remainder Theorem so that
d = 1 mod N^s and d = 0 mod t. The exponent for s = 1 is computed once and
kept in the key.

Example:
    >>> pub, priv = generate_key(DJKeyGenParams(256, 20))
    >>> pub.modulus == priv.p * priv.q
    True
    >>> unpack_public_key(pack_public_key(pub)) == pub
    True

"""

import logging

import msgpack

from petlib import pack
from petlib.bn import Bn

from .arith import to_bn, gcd, lcm, crt, random_prime, default_random, SeededRandom
from .errors import DomainError, InvalidKeyError, InvalidParameterError, UnsupportedOperation

import pytest

logger = logging.getLogger(__name__)

ALGORITHM = "DamgardJurik"

# Smaller moduli leave too few primes of the required shape
MIN_MODULUS_LENGTH = 16

PUBLIC_KEY_CODE = 20


def generate_d(ns, t):
    """Returns d such that d = 1 mod ns and d = 0 mod t."""
    return crt(1, ns, 0, t)


class DJPublicKey(object):
    """ A Damgard-Jurik public key, the modulus N. Immutable. """

    __slots__ = ["_modulus"]

    def __init__(self, modulus):
        modulus = to_bn(modulus)
        if modulus <= 1:
            raise DomainError("The modulus has to be larger than 1.")
        self._modulus = modulus

    @property
    def modulus(self):
        return self._modulus

    @property
    def algorithm(self):
        return ALGORITHM

    def encoded(self):
        """The modulus as an unsigned big-endian byte sequence."""
        return self._modulus.binary()

    @staticmethod
    def from_encoded(data):
        """Rebuilds a public key from the output of ``encoded``."""
        return DJPublicKey(Bn.from_binary(data))

    def __eq__(self, other):
        return isinstance(other, DJPublicKey) and self._modulus == other._modulus

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash((ALGORITHM, self._modulus))

    def __repr__(self):
        return "DJPublicKey(bits=%d)" % self._modulus.num_bits()


class DJPrivateKey(object):
    """ A Damgard-Jurik private key. Immutable, and never encoded for transport.

    Args:
        p, q (Bn): the two distinct prime factors of the modulus.
        t (Bn): a common multiple of p - 1 and q - 1, lcm(p - 1, q - 1) if omitted.
        d_s1 (Bn): the decryption exponent for s = 1, derived if omitted.
    """

    __slots__ = ["_p", "_q", "_t", "_d_s1", "_modulus"]

    def __init__(self, p, q, t=None, d_s1=None):
        p, q = to_bn(p), to_bn(q)
        if p <= 2 or q <= 2 or p == q:
            raise DomainError("p and q have to be distinct odd primes.")

        n = p * q
        t = lcm(p - 1, q - 1) if t is None else to_bn(t)
        if t % (p - 1) != 0 or t % (q - 1) != 0:
            raise DomainError("t has to be a multiple of p - 1 and q - 1.")

        if d_s1 is None:
            d_s1 = generate_d(n, t)
        else:
            d_s1 = to_bn(d_s1)
            if d_s1 % n != 1 or d_s1 % t != 0:
                raise DomainError("d has to be 1 mod N and 0 mod t.")

        self._p, self._q, self._t, self._d_s1 = p, q, t, d_s1
        self._modulus = n

    @property
    def p(self):
        return self._p

    @property
    def q(self):
        return self._q

    @property
    def t(self):
        return self._t

    @property
    def d_s1(self):
        return self._d_s1

    @property
    def modulus(self):
        return self._modulus

    @property
    def algorithm(self):
        return ALGORITHM

    def d_for(self, s):
        """The decryption exponent for length s: d = 1 mod N^s, d = 0 mod t."""
        if s < 1:
            raise DomainError("The length parameter has to be at least 1.")
        if s == 1:
            return self._d_s1
        return generate_d(self._modulus ** s, self._t)

    def encoded(self):
        raise UnsupportedOperation("Damgard-Jurik private keys cannot be encoded.")

    def __eq__(self, other):
        if not isinstance(other, DJPrivateKey):
            return False
        return (self._p, self._q, self._t, self._d_s1) == \
               (other._p, other._q, other._t, other._d_s1)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash((ALGORITHM, self._p, self._q))

    def __repr__(self):
        return "DJPrivateKey(bits=%d)" % self._modulus.num_bits()


class DJKeyGenParams(object):
    """ Parameters for key generation: the bit length of the modulus N and
    the certainty that p and q are prime (error at most 2^-certainty). """

    __slots__ = ["modulus_length", "certainty"]

    def __init__(self, modulus_length=1024, certainty=40):
        for name, val in [("modulus_length", modulus_length), ("certainty", certainty)]:
            if isinstance(val, bool) or not isinstance(val, int):
                raise InvalidParameterError("%s has to be an integer." % name)

        if modulus_length < MIN_MODULUS_LENGTH:
            raise InvalidParameterError(
                "The modulus has to be at least %d bits." % MIN_MODULUS_LENGTH)
        if certainty < 1:
            raise InvalidParameterError("Certainty has to be at least 1.")

        self.modulus_length = modulus_length
        self.certainty = certainty


def generate_key(params=None, rng=None):
    """Generates a Damgard-Jurik key pair.

    Args:
        params (DJKeyGenParams): the modulus length and prime certainty.
        rng: the randomness provider, the OpenSSL one if omitted.

    Returns:
        DJPublicKey, DJPrivateKey: the key pair.
    """
    if params is None:
        raise UnsupportedOperation(
            "Damgard-Jurik keys need parameters, use generate_key with DJKeyGenParams.")
    if not isinstance(params, DJKeyGenParams):
        raise InvalidParameterError("Key generation parameters have to be DJKeyGenParams.")

    rng = rng or default_random
    pbits = params.modulus_length // 2
    qbits = params.modulus_length - pbits

    logger.debug("Generating a %d bit Damgard-Jurik modulus", params.modulus_length)
    while True:
        p = random_prime(pbits, params.certainty, rng)
        q = random_prime(qbits, params.certainty, rng)
        if p == q:
            logger.debug("Resampling primes: p == q")
            continue

        n = p * q
        if gcd(n, (p - 1) * (q - 1)) != 1:
            logger.debug("Resampling primes: N and phi(N) are not co-prime")
            continue
        break

    logger.debug("Generated a %d bit Damgard-Jurik modulus", n.num_bits())
    return DJPublicKey(n), DJPrivateKey(p, q)


# ---------- Transport records ------------


def _check_record(record, fields):
    if not isinstance(record, dict) or record.get("algorithm") != ALGORITHM:
        raise InvalidKeyError("Not a %s key record." % ALGORITHM)

    missing = [f for f in fields if f not in record]
    if missing:
        raise InvalidKeyError("The key record lacks: %s" % ", ".join(missing))


def public_key_to_record(pub):
    """A self-describing dictionary holding the state of a public key."""
    if not isinstance(pub, DJPublicKey):
        raise InvalidKeyError("Expected a DJPublicKey, got %r." % (type(pub),))
    return {"algorithm": ALGORITHM, "modulus": pub.modulus}


def public_key_from_record(record):
    _check_record(record, ["modulus"])
    return DJPublicKey(record["modulus"])


def private_key_to_record(priv):
    """A dictionary holding the state of a private key. It is meant for
    local storage only: there is no byte encoding of it. """
    if not isinstance(priv, DJPrivateKey):
        raise InvalidKeyError("Expected a DJPrivateKey, got %r." % (type(priv),))
    return {"algorithm": ALGORITHM,
            "p": priv.p, "q": priv.q, "t": priv.t, "d_s1": priv.d_s1}


def private_key_from_record(record):
    _check_record(record, ["p", "q", "t", "d_s1"])
    return DJPrivateKey(record["p"], record["q"], record["t"], record["d_s1"])


def pack_public_key(pub):
    """The msgpack byte form of the public key record."""
    record = public_key_to_record(pub)
    return msgpack.packb(record, default=pack.default, use_bin_type=True)


def unpack_public_key(data):
    record = msgpack.unpackb(data, ext_hook=pack.ext_hook, raw=False)
    return public_key_from_record(record)


# Public keys may be embedded in any petlib encoded structure
pack.register_coders(DJPublicKey, PUBLIC_KEY_CODE,
                     lambda pub: pub.encoded(), DJPublicKey.from_encoded)


# ---------- Tests ------------


def test_generate_d():
    pub, priv = generate_key(DJKeyGenParams(128, 20))
    n = pub.modulus
    for s in [1, 2, 3]:
        ns = n ** s
        d = priv.d_for(s)
        assert d % ns == 1
        assert d % priv.t == 0

    assert priv.d_for(1) == priv.d_s1

    with pytest.raises(DomainError):
        priv.d_for(0)


def test_keygen():
    pub, priv = generate_key(DJKeyGenParams(256, 20))

    assert pub.modulus.num_bits() == 256
    assert pub.modulus == priv.p * priv.q
    assert priv.modulus == pub.modulus
    assert priv.p != priv.q
    assert priv.t % (priv.p - 1) == 0
    assert priv.t % (priv.q - 1) == 0
    assert priv.d_s1 % pub.modulus == 1
    assert priv.d_s1 % priv.t == 0
    assert gcd(pub.modulus, (priv.p - 1) * (priv.q - 1)) == 1
    assert pub.algorithm == priv.algorithm == "DamgardJurik"


def test_keygen_odd_length():
    pub, priv = generate_key(DJKeyGenParams(101, 20))
    assert pub.modulus.num_bits() == 101


def test_keygen_seeded():
    params = DJKeyGenParams(128, 20)
    pub1, priv1 = generate_key(params, SeededRandom(7))
    pub2, priv2 = generate_key(params, SeededRandom(7))
    assert pub1 == pub2
    assert priv1 == priv2
    assert hash(pub1) == hash(pub2)


class _ScriptedRandom(object):
    """ Hands out fixed offsets so the sampled primes are known in advance. """

    def __init__(self, values):
        self.values = list(values)

    def randbelow(self, bound):
        x = Bn(self.values.pop(0))
        assert x < bound
        return x


def test_keygen_resamples_equal_primes(caplog):
    caplog.set_level(logging.DEBUG, logger=__name__)

    # 8 bit primes are 192 plus the offset, made odd: 193, 193, then 193, 197
    rng = _ScriptedRandom([1, 1, 1, 5])
    pub, priv = generate_key(DJKeyGenParams(16, 20), rng)

    assert rng.values == []
    assert (priv.p, priv.q) == (193, 197)
    assert pub.modulus == 193 * 197
    assert "p == q" in caplog.text


def test_keygen_resamples_non_coprime_phi(caplog):
    caplog.set_level(logging.DEBUG, logger=__name__)

    # p = 233 and q = 467 = 2 * 233 + 1, so p divides both N and phi(N).
    # Then p = 193 and q = 389.
    rng = _ScriptedRandom([41, 83, 1, 5])
    pub, priv = generate_key(DJKeyGenParams(17, 20), rng)

    assert rng.values == []
    assert (priv.p, priv.q) == (193, 389)
    assert pub.modulus.num_bits() == 17
    assert gcd(pub.modulus, (priv.p - 1) * (priv.q - 1)) == 1
    assert "not co-prime" in caplog.text


def test_keygen_params():
    params = DJKeyGenParams()
    assert params.modulus_length == 1024
    assert params.certainty == 40

    with pytest.raises(Exception) as excinfo:
        generate_key()
    assert 'DJKeyGenParams' in str(excinfo.value)
    assert isinstance(excinfo.value, UnsupportedOperation)

    with pytest.raises(InvalidParameterError):
        generate_key((1024, 40))

    with pytest.raises(InvalidParameterError):
        DJKeyGenParams(8)

    with pytest.raises(InvalidParameterError):
        DJKeyGenParams(256, 0)

    with pytest.raises(InvalidParameterError):
        DJKeyGenParams("256")


def test_private_key_checks():
    with pytest.raises(DomainError):
        DJPrivateKey(Bn(7), Bn(7))

    priv = DJPrivateKey(Bn(5), Bn(7))
    assert priv.t == 12
    assert priv.modulus == 35
    assert priv.d_s1 == 36

    with pytest.raises(DomainError):
        DJPrivateKey(Bn(5), Bn(7), t=Bn(18))

    with pytest.raises(DomainError):
        DJPrivateKey(Bn(5), Bn(7), d_s1=priv.d_s1 + 1)

    assert repr(priv) == "DJPrivateKey(bits=6)"


def test_encoding():
    pub, priv = generate_key(DJKeyGenParams(256, 20))
    data = pub.encoded()
    assert isinstance(data, bytes)
    assert len(data) == 32
    assert DJPublicKey.from_encoded(data) == pub

    with pytest.raises(Exception) as excinfo:
        priv.encoded()
    assert 'cannot be encoded' in str(excinfo.value)


def test_records():
    pub, priv = generate_key(DJKeyGenParams(256, 20))

    rec = public_key_to_record(pub)
    assert rec["algorithm"] == ALGORITHM
    assert public_key_from_record(rec) == pub

    rec = private_key_to_record(priv)
    assert private_key_from_record(rec) == priv

    rec["algorithm"] = "RSA"
    with pytest.raises(InvalidKeyError):
        private_key_from_record(rec)

    rec = private_key_to_record(priv)
    del rec["t"]
    with pytest.raises(Exception) as excinfo:
        private_key_from_record(rec)
    assert 'lacks: t' in str(excinfo.value)

    rec = private_key_to_record(priv)
    rec["d_s1"] = rec["d_s1"] + 1
    with pytest.raises(DomainError):
        private_key_from_record(rec)

    with pytest.raises(InvalidKeyError):
        public_key_to_record(priv)


def test_pack():
    pub, _ = generate_key(DJKeyGenParams(256, 20))
    data = pack_public_key(pub)
    assert unpack_public_key(data) == pub

    packed = msgpack.packb([pub, pub.modulus], default=pack.default, use_bin_type=True)
    x = msgpack.unpackb(packed, ext_hook=pack.ext_hook, raw=False)
    assert x == [pub, pub.modulus]
