import threading

from caixasim.caixa.cache import CityCache
from caixasim.caixa.schemas import CityOption

SP_CITIES = [CityOption(code="3550308", name="SAO PAULO"), CityOption(code="3509502", name="CAMPINAS")]


def test_miss_returns_none():
    assert CityCache().get("SP") is None


def test_keys_are_case_insensitive():
    cache = CityCache()
    cache.put(" sp ", SP_CITIES)

    assert cache.get("SP") == SP_CITIES
    assert cache.get("sp") == SP_CITIES
    assert len(cache) == 1


def test_returned_list_is_a_copy():
    cache = CityCache()
    cache.put("SP", SP_CITIES)

    cities = cache.get("SP")
    cities.clear()

    assert cache.get("SP") == SP_CITIES


def test_clear():
    cache = CityCache()
    cache.put("SP", SP_CITIES)
    cache.clear()

    assert cache.get("SP") is None
    assert len(cache) == 0


def test_concurrent_writers():
    cache = CityCache()
    ufs = ["SP", "RJ", "MG", "BA", "PR", "RS", "SC", "GO"]

    threads = [threading.Thread(target=cache.put, args=(uf, SP_CITIES)) for uf in ufs * 4]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) == len(ufs)
    assert all(cache.get(uf) == SP_CITIES for uf in ufs)
