# scrapers/__init__.py
from . import melcom

SCRAPERS = {
    "melcom": melcom,
}
