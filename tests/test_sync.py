"""Tests for the FeedSynchronizer."""

import pytest
from gmc_sync.exceptions import RemoteRequestError, ValidationGapError
from gmc_sync.models import AppConfig
from gmc_sync.sync import FeedProduct, FeedSynchronizer, SyncResult, group_feed_records


def existing_product(platform, **fields):
    product = {"_id": "prod00000000000000000001", "sku": "A1", "name": "Old", **fields}
    platform.products.append(product)
    return product


class TestSaveProduct:
    """Tests for FeedSynchronizer.save_product."""

    def test_creates_new_product(self, platform, synchronizer, shoe_record):
        response = synchronizer.save_product(shoe_record)

        posts = platform.calls("POST", "/products.json")
        assert len(posts) == 1
        body = posts[0][3]
        assert body["sku"] == "A1"
        assert body["price"] == 50
        assert body["quantity"] == 9999
        assert body["keywords"] == ["Shoes", "Running"]
        assert body["categories"][0]["name"] == "Running"
        assert body["categories"][0]["slug"] == "running"
        assert "_id" in body["categories"][0]
        assert "_id" not in body
        assert response == {"_id": platform.products[0]["_id"]}

    def test_existing_product_not_updated_by_default(self, platform, synchronizer, shoe_record):
        existing_product(platform)

        response = synchronizer.save_product(shoe_record)

        assert response == {}
        assert platform.calls("PATCH") == []
        assert platform.calls("POST", "/products.json") == []
        assert platform.products[0]["name"] == "Old"

    def test_existing_product_updated_when_enabled(self, platform, client, image_importer, taxonomy, shoe_record):
        existing_product(platform, visible=False)
        synchronizer = FeedSynchronizer(
            client, AppConfig(update_product=True), image_importer=image_importer, taxonomy=taxonomy
        )

        response = synchronizer.save_product(shoe_record)

        patches = platform.calls("PATCH", "/products/prod00000000000000000001.json")
        assert len(patches) == 1
        assert patches[0][3]["visible"] is False
        assert patches[0][3]["name"] == "Shoe"
        assert response == {"_id": "prod00000000000000000001"}
        assert platform.products[0]["name"] == "Shoe"

    def test_update_keeps_stored_records_the_feed_does_not_own(
        self, platform, client, image_importer, taxonomy, shoe_record
    ):
        stored_variations = [
            {"_id": "var1", "name": "Blue", "specifications": {"colors": [{"text": "Blue", "value": "blue"}]}},
        ]
        existing_product(platform, variations=stored_variations, brands=[{"_id": "b1"}])
        synchronizer = FeedSynchronizer(
            client, AppConfig(update_product=True), image_importer=image_importer, taxonomy=taxonomy
        )

        response = synchronizer.save_product(shoe_record)

        body = platform.calls("PATCH", "/products/prod00000000000000000001.json")[0][3]
        assert body["variations"] == stored_variations
        assert body["brands"] == [{"_id": "b1"}]
        assert body["name"] == "Shoe"
        assert response == {"_id": "prod00000000000000000001"}

    def test_created_id_fetched_when_post_has_no_body(self, platform, synchronizer, shoe_record):
        platform.bodiless.add(("POST", "/v1/products.json"))

        response = synchronizer.save_product(shoe_record)

        assert response == {"_id": platform.products[0]["_id"]}
        assert len(platform.calls("GET", "/products.json")) == 2

    def test_missing_sku(self, platform, synchronizer):
        with pytest.raises(ValidationGapError):
            synchronizer.save_product({"title": "Nameless"})
        assert platform.requests == []

    def test_lookup_failure_propagates(self, platform, synchronizer, shoe_record):
        platform.failures[("GET", "/v1/products.json")] = 500
        with pytest.raises(RemoteRequestError):
            synchronizer.save_product(shoe_record)
        assert platform.calls("POST") == []


class TestVariations:
    """Tests for variation synchronization."""

    def test_variable_product_gets_variations(self, platform, synchronizer, variation_records):
        feed_product = group_feed_records(variation_records)[0]

        synchronizer.save_product(feed_product.record, feed_product.variations)

        product = platform.products[0]
        assert product["sku"] == "TEE"
        assert [v["sku"] for v in product["variations"]] == ["TEE-S", "TEE-M"]
        assert product["variations"][1]["specifications"]["size"] == [{"text": "M", "value": "m"}]
        assert all(len(v["_id"]) == 24 for v in product["variations"])

    def test_variation_identity_preserved_across_runs(self, platform, client, image_importer, taxonomy, variation_records):
        synchronizer = FeedSynchronizer(
            client, AppConfig(update_product=True), image_importer=image_importer, taxonomy=taxonomy
        )
        feed_product = group_feed_records(variation_records)[0]

        synchronizer.save_product(feed_product.record, feed_product.variations)
        first_ids = {v["sku"]: v["_id"] for v in platform.products[0]["variations"]}
        synchronizer.save_product(feed_product.record, feed_product.variations)
        second_ids = {v["sku"]: v["_id"] for v in platform.products[0]["variations"]}

        assert first_ids == second_ids
        assert len(platform.products) == 1

    def test_variations_replace_full_list(self, platform, synchronizer, variation_records):
        product = existing_product(
            platform,
            sku="TEE",
            variations=[{"_id": "old0000000000000000000001", "sku": "TEE-XL"}],
        )

        synchronizer.save_variations(variation_records[:1], product)

        assert [v["sku"] for v in platform.products[0]["variations"]] == ["TEE-S"]

    def test_variation_without_specifications_is_skipped(self, platform, synchronizer):
        product = existing_product(platform, sku="G")
        feed_variations = [
            {"item_group_id": "G", "id": "G-1", "color": "Red", "title": "Red one"},
            {"id": "G-2"},
        ]

        saved = synchronizer.save_variations(feed_variations, product)

        assert [v["sku"] for v in saved] == ["G-1"]
        assert len(platform.calls("PATCH")) == 1


class TestSaveImages:
    """Tests for FeedSynchronizer.save_images."""

    def test_pictures_replaced_with_successful_imports(self, platform, synchronizer):
        product = existing_product(platform, name="Shoe", pictures=[{"_id": "old"}])

        pictures = synchronizer.save_images(
            product["_id"],
            [
                "https://images.test/one.jpg",
                "https://images.test/missing.jpg",
                "https://images.test/two.jpg",
            ],
        )

        assert len(pictures) == 2
        stored = platform.products[0]["pictures"]
        assert len(stored) == 2
        assert stored[0]["normal"]["alt"] == "Shoe (normal)"
        assert "size" not in stored[0]["normal"]

    def test_failed_imports_still_patch(self, platform, synchronizer):
        product = existing_product(platform, pictures=[{"_id": "old"}])

        pictures = synchronizer.save_images(product["_id"], ["https://images.test/missing.jpg"])

        assert pictures == []
        assert platform.products[0]["pictures"] == []


class TestSyncProducts:
    """Tests for batch synchronization."""

    def test_batch(self, platform, synchronizer, shoe_record, variation_records):
        products = group_feed_records([shoe_record, *variation_records, {"title": "No id"}])

        with synchronizer as sync:
            result = sync.sync_products(products)

        assert isinstance(result, SyncResult)
        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.total_count == 3
        tee = next(p for p in platform.products if p["sku"] == "TEE")
        assert len(tee["pictures"]) == 1

    def test_images_skipped_with_warning_when_id_unknown(
        self, platform, synchronizer, shoe_record, monkeypatch, caplog
    ):
        platform.bodiless.add(("POST", "/v1/products.json"))
        monkeypatch.setattr(synchronizer.client, "find_products_by_sku", lambda sku: [])
        record = {**shoe_record, "image_link": "https://images.test/shoe.jpg"}

        result = synchronizer.sync_products(group_feed_records([record]))

        assert result.successful == [{"sku": "A1", "_id": None}]
        assert platform.calls("POST", "/api/v1/upload.json") == []
        assert "product id unknown" in caplog.text

    def test_existing_products_are_skipped(self, platform, synchronizer, shoe_record):
        existing_product(platform)
        result = synchronizer.sync_products(group_feed_records([shoe_record]))
        assert result.skipped == ["A1"]
        assert result.success_count == 0

    def test_context_manager_clears_taxonomy_cache(self, platform, synchronizer, shoe_record):
        with synchronizer as sync:
            sync.save_product(shoe_record)
            assert sync.taxonomy._cache
        assert synchronizer.taxonomy._cache == {}


class TestGroupFeedRecords:
    """Tests for grouping variation records."""

    def test_standalone_records(self, shoe_record):
        products = group_feed_records([shoe_record])
        assert products == [FeedProduct(record=shoe_record)]

    def test_group_parent(self, variation_records):
        products = group_feed_records(variation_records)

        assert len(products) == 1
        parent = products[0].record
        assert parent["id"] == "TEE"
        assert "g:id" not in parent
        assert "g:item_group_id" not in parent
        assert "g:size" not in parent
        assert "g:color" not in parent
        assert parent["g:title"] == "Basic Tee"
        assert len(products[0].variations) == 2

    def test_order_of_first_appearance(self, shoe_record, variation_records):
        products = group_feed_records([variation_records[0], shoe_record, variation_records[1]])
        assert [len(p.variations) for p in products] == [2, 0]

    def test_group_image_links(self, variation_records):
        feed_product = group_feed_records(variation_records)[0]
        assert feed_product.image_links == ["https://images.test/tee-white.jpg"]
