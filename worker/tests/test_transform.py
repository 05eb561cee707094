from listing_sweep.etl import transform


def test_format_address():
    address = {"streetAddress": "100 Main St", "city": "Springfield", "state": "IL", "zipcode": "62701"}
    assert transform.format_address(address) == "100 Main St, Springfield, IL 62701"
    assert transform.format_address("  1 A St ") == "1 A St"
    assert transform.format_address(None) is None


def test_to_listing_row_maps_fields():
    payload = {
        "zpid": 123,
        "address": {"streetAddress": "100 Main St", "city": "Springfield", "state": "IL", "zipcode": "62701"},
        "price": "$350,000",
        "zestimate": 355000,
        "bedrooms": 3,
        "bathrooms": 2.5,
        "livingArea": 1800,
        "homeType": "SINGLE_FAMILY",
        "homeStatus": "FOR_SALE",
        "latitude": 39.78,
        "longitude": -89.65,
    }

    row = transform.to_listing_row(payload, "123")

    assert row["zpid"] == "123"
    assert row["city"] == "Springfield"
    assert row["price"] == 350000.0
    assert row["bathrooms"] == 2.5
    assert row["lat"] == 39.78
    assert row["raw"] is payload


def test_to_listing_row_falls_back_to_context():
    row = transform.to_listing_row({}, "77", "https://listings.test/homedetails/77_zpid/")
    assert row["zpid"] == "77"
    assert row["detail_url"] == "https://listings.test/homedetails/77_zpid/"
    assert row["address"] is None
