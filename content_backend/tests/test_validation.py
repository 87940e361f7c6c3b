import unittest

from content_backend.entities import BLOG_POST, PROJECT, SHOP_ITEM, TESTIMONIAL
from content_backend.errors import ValidationError
from content_backend.validation import RequestValidator


class CreateValidationTests(unittest.TestCase):
    def test_required_fields_are_trimmed(self):
        values = RequestValidator(PROJECT).validate_create(
            {"projectName": "  Greenhall  ", "websiteLink": " https://g.test ", "extra": "x"}
        )
        self.assertEqual(
            values,
            {"projectName": "Greenhall", "websiteLink": "https://g.test", "description": ""},
        )

    def test_missing_and_blank_fields_are_named(self):
        with self.assertRaises(ValidationError) as ctx:
            RequestValidator(TESTIMONIAL).validate_create({"name": "   "})
        self.assertEqual(sorted(ctx.exception.fields), ["message", "name"])
        self.assertIn("name", ctx.exception.message)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_rating_defaults_and_clamps(self):
        validator = RequestValidator(TESTIMONIAL)
        base = {"name": "Ada", "message": "Great"}
        self.assertEqual(validator.validate_create(base)["rating"], 5)
        self.assertEqual(validator.validate_create({**base, "rating": "abc"})["rating"], 5)
        self.assertEqual(validator.validate_create({**base, "rating": "9"})["rating"], 5)
        self.assertEqual(validator.validate_create({**base, "rating": "0"})["rating"], 1)
        self.assertEqual(validator.validate_create({**base, "rating": "3.6"})["rating"], 4)

    def test_price_is_a_float(self):
        values = RequestValidator(SHOP_ITEM).validate_create({"name": "Mug", "price": "12.5"})
        self.assertEqual(values["price"], 12.5)

    def test_post_date_is_optional(self):
        validator = RequestValidator(BLOG_POST)
        values = validator.validate_create({"title": "T", "content": "C"})
        self.assertNotIn("postDate", values)
        dated = validator.validate_create(
            {"title": "T", "content": "C", "postDate": "2024-05-01T10:00:00Z"}
        )
        self.assertEqual(dated["postDate"], "2024-05-01T10:00:00.000Z")

    def test_bad_post_date_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            RequestValidator(BLOG_POST).validate_create(
                {"title": "T", "content": "C", "postDate": "next tuesday"}
            )
        self.assertEqual(ctx.exception.fields, ["postDate"])


class UpdateValidationTests(unittest.TestCase):
    def test_only_provided_fields_are_returned(self):
        values = RequestValidator(PROJECT).validate_update({"projectName": " New "})
        self.assertEqual(values, {"projectName": "New"})

    def test_blank_required_field_is_ignored(self):
        values = RequestValidator(PROJECT).validate_update(
            {"projectName": "  ", "description": "  "}
        )
        self.assertEqual(values, {"description": ""})

    def test_unparseable_number_falls_back_to_default(self):
        values = RequestValidator(TESTIMONIAL).validate_update({"rating": "lots"})
        self.assertEqual(values, {"rating": 5})


if __name__ == "__main__":
    unittest.main()
