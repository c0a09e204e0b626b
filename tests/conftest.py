# tests/conftest.py
import pytest

from chains.hts_chain import ClassificationEngine
from database_connection.entries import CodeEntry
from database_connection.repository import InMemoryCodeRepository
from tariff_programs.programs import load_tariff_programs
from utils.lexicons import load_lexicons
from utils.settings import FeatureFlags, Settings

COTTON_SPECIAL = "Free (AU,BH,CL,CO,IL,JO,KR,MA,OM,P,PA,PE,S,SG)"

MENS = ["Men's or boys':"]

CATALOG = [
    # Apparel, knitted
    CodeEntry(code="61", description="Articles of apparel and clothing accessories, knitted or crocheted"),
    CodeEntry(code="6109", parent_code="61",
              description="T-shirts, singlets, tank tops and similar garments, knitted or crocheted:",
              keywords=["t-shirts", "t-shirt", "tshirt", "singlets", "tank", "tops", "garments", "knitted"]),
    CodeEntry(code="610910", parent_code="6109", description="Of cotton:", keywords=["cotton"]),
    CodeEntry(code="61091000", parent_code="610910", description="Of cotton", base_rate="16.5%",
              special_rates=COTTON_SPECIAL, keywords=["cotton"]),
    CodeEntry(code="6109100004", parent_code="61091000", parent_groupings=MENS,
              description="T-shirts, all white, short hemmed sleeves, hemmed bottom, crew or round neckline, "
                          "or V-neck, with a mitered seam at the center of the V, without pockets, trim or embroidery",
              keywords=["t-shirts", "t-shirt", "white", "sleeves"]),
    CodeEntry(code="6109100012", parent_code="61091000", parent_groupings=MENS,
              description="Other T-shirts", keywords=["t-shirts", "t-shirt", "tshirt"]),
    CodeEntry(code="6109100014", parent_code="61091000", parent_groupings=MENS,
              description="Singlets and other tank tops", keywords=["singlets", "tank", "tops"]),
    # Apparel, not knitted
    CodeEntry(code="62", description="Articles of apparel and clothing accessories, not knitted or crocheted"),
    CodeEntry(code="6205", parent_code="62", description="Men's or boys' shirts:",
              keywords=["shirts", "shirt", "men", "boys"]),
    CodeEntry(code="620520", parent_code="6205", description="Of cotton:", keywords=["cotton"]),
    CodeEntry(code="62052020", parent_code="620520", parent_groupings=["Other:"], description="Other",
              base_rate="19.7%", keywords=["shirts", "shirt", "cotton", "boys"]),
    # Plastics household articles: a catch-all with specific carve-out siblings
    CodeEntry(code="39", description="Plastics and articles thereof"),
    CodeEntry(code="3924", parent_code="39",
              description="Tableware, kitchenware, other household articles and hygienic or toilet articles, "
                          "of plastics:",
              keywords=["tableware", "kitchenware", "household", "plastics"]),
    CodeEntry(code="392410", parent_code="3924", description="Tableware and kitchenware:"),
    CodeEntry(code="39241040", parent_code="392410", description="Salad bowls", base_rate="3.4%",
              keywords=["salad", "bowls", "bowl"]),
    CodeEntry(code="392490", parent_code="3924", description="Other:"),
    CodeEntry(code="39249005", parent_code="392490", description="Nursing nipples and finger cots",
              base_rate="Free", keywords=["nursing", "nipples", "finger", "cots"]),
    CodeEntry(code="39249020", parent_code="392490", description="Picture frames", base_rate="5.3%",
              keywords=["picture", "frames", "frame"]),
    CodeEntry(code="39249056", parent_code="392490", description="Other", base_rate="3.4%",
              special_rates="Free (A+,AU,BH,CA,CL,CO,D,E,IL,JO,KR,MA,MX,OM,P,PA,PE,S,SG)",
              keywords=["household", "articles", "plastic", "planter", "container"]),
    # Footwear with value-gated siblings
    CodeEntry(code="64", description="Footwear, gaiters and the like; parts of such articles"),
    CodeEntry(code="6402", parent_code="64",
              description="Other footwear with outer soles and uppers of rubber or plastics:",
              keywords=["footwear", "shoes", "rubber", "plastics"]),
    CodeEntry(code="640299", parent_code="6402", description="Other:"),
    CodeEntry(code="64029905", parent_code="640299", description="Footwear having uppers of rubber",
              base_rate="6%", keywords=["footwear", "rubber", "shoes"]),
    CodeEntry(code="64029931", parent_code="640299", parent_groupings=["Other:"],
              description="Valued not over $3/pair", base_rate="48%", keywords=["footwear", "shoes"]),
    CodeEntry(code="64029990", parent_code="640299", parent_groupings=["Other:"],
              description="Valued over $3/pair", base_rate="20%", keywords=["footwear", "shoes"]),
    # Steel household articles (Section 232)
    CodeEntry(code="73", description="Articles of iron or steel"),
    CodeEntry(code="7323", parent_code="73",
              description="Table, kitchen or other household articles and parts thereof, of iron or steel:",
              keywords=["table", "kitchen", "household", "steel"]),
    CodeEntry(code="732393", parent_code="7323", description="Of stainless steel:"),
    CodeEntry(code="73239300", parent_code="732393", description="Of stainless steel", base_rate="2%",
              keywords=["stainless", "steel"]),
]


@pytest.fixture
def settings():
    s = Settings()
    s.flags = FeatureFlags(semantic_search=False, llm_enrichment=False)
    s.confidence_threshold = 40
    s.confidence_floor = 15
    return s


@pytest.fixture
def catalog():
    return list(CATALOG)


@pytest.fixture
def repository(catalog):
    return InMemoryCodeRepository(catalog)


@pytest.fixture
def lexicons():
    return load_lexicons()


@pytest.fixture
def registry():
    return load_tariff_programs()


@pytest.fixture
def engine(repository, settings, lexicons, registry):
    return ClassificationEngine(repository, settings, lexicons=lexicons, registry=registry)
