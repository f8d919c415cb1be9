## Secure aggregation of counters with Damgard-Jurik.
## Clients encrypt their counts under the analyst's public key, an
## untrusted aggregator sums (and optionally weights) the ciphertexts,
## and only the analyst decrypts the totals.

import msgpack

from petlib import pack
from djlib.dj import DamgardJurik, DJPlaintext
from djlib.keys import DJKeyGenParams, pack_public_key, unpack_public_key

import pytest

# All ciphertexts in a sum share this length
REPORT_LENGTH = 1


def analyst_setup(bits=512):
    """Generates the analyst key pair and returns the engine and the packed public key"""
    dj = DamgardJurik()
    pub, priv = dj.generate_key(DJKeyGenParams(bits, 40))
    dj.set_key(pub, priv)
    dj.set_length_parameter(REPORT_LENGTH)
    return dj, pack_public_key(pub)


def client_report(packed_pub, counts):
    """Encrypts a vector of counts and packs it for sending"""
    dj = DamgardJurik()
    dj.set_key(unpack_public_key(packed_pub))
    dj.set_length_parameter(REPORT_LENGTH)
    ciphers = [dj.encrypt(DJPlaintext(x)) for x in counts]
    return msgpack.packb(ciphers, default=pack.default, use_bin_type=True)


def aggregate(packed_pub, reports, weights=None):
    """Sums the encrypted vectors, each weighted by a public weight"""
    dj = DamgardJurik()
    dj.set_key(unpack_public_key(packed_pub))
    dj.set_length_parameter(REPORT_LENGTH)

    total = None
    for idx, report in enumerate(reports):
        ciphers = msgpack.unpackb(report, ext_hook=pack.ext_hook, raw=False)
        if weights is not None:
            ciphers = [dj.mult_by_const(c, weights[idx]) for c in ciphers]

        if total is None:
            total = ciphers
        else:
            assert len(total) == len(ciphers)
            total = [dj.add(a, b) for a, b in zip(total, ciphers)]

    # Hide how the total was assembled
    total = [dj.rerandomize(c) for c in total]
    return msgpack.packb(total, default=pack.default, use_bin_type=True)


def analyst_decrypt(dj, packed_total):
    ciphers = msgpack.unpackb(packed_total, ext_hook=pack.ext_hook, raw=False)
    return [int(dj.decrypt(c).value) for c in ciphers]


def test_secure_sum():
    dj, packed_pub = analyst_setup(256)

    data = [[1, 0, 5], [2, 2, 0], [0, 7, 1], [10, 0, 0]]
    reports = [client_report(packed_pub, counts) for counts in data]

    total = aggregate(packed_pub, reports)
    assert analyst_decrypt(dj, total) == [13, 9, 6]


def test_weighted_sum():
    dj, packed_pub = analyst_setup(256)

    data = [[1, 2], [3, 4]]
    reports = [client_report(packed_pub, counts) for counts in data]

    total = aggregate(packed_pub, reports, weights=[10, 100])
    assert analyst_decrypt(dj, total) == [310, 420]


def test_aggregator_cannot_decrypt():
    _, packed_pub = analyst_setup(256)
    report = client_report(packed_pub, [1])

    aggregator = DamgardJurik()
    aggregator.set_key(unpack_public_key(packed_pub))
    ciphers = msgpack.unpackb(report, ext_hook=pack.ext_hook, raw=False)

    with pytest.raises(Exception) as excinfo:
        aggregator.decrypt(ciphers[0])
    assert 'private key' in str(excinfo.value)


def test_zero_weight():
    dj, packed_pub = analyst_setup(256)

    data = [[4, 0], [3, 8]]
    reports = [client_report(packed_pub, counts) for counts in data]

    total = aggregate(packed_pub, reports, weights=[0, 1])
    assert analyst_decrypt(dj, total) == [3, 8]

    total = aggregate(packed_pub, reports, weights=[1, 0])
    assert analyst_decrypt(dj, total) == [4, 0]

    total = aggregate(packed_pub, reports, weights=[0, 0])
    assert analyst_decrypt(dj, total) == [0, 0]
