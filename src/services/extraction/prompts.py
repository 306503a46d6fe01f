"""Prompt for reading a restaurant menu into JSON."""

MENU_EXTRACTION_PROMPT = """
Please analyze the attached file(s) and determine if they are a restaurant menu.
Multiple files are pages of the same menu, in order.

If it IS a restaurant menu, respond with valid JSON in exactly this shape,
writing the restaurant fields first and the categories in the order they
appear on the menu:
{
  "isMenu": true,
  "restaurantName": "Name of the restaurant",
  "location": {
    "city": "City name (if available)",
    "state": "State abbreviation (e.g. CA, NY, TX)"
  },
  "categories": [
    {
      "category": "Category name (e.g. Appetizers, Entrees, Desserts)",
      "items": [
        {
          "name": "Item name",
          "description": "Brief description (optional)",
          "price": 12.99,
          "isEstimate": false,
          "chips": ["Vegetarian", "Spicy"]
        }
      ]
    }
  ]
}

If prices are missing or unclear, estimate them based on the type of
restaurant and dish, and set "isEstimate": true.
"chips" are short dietary or regional tags printed on or clearly implied by
the menu (e.g. Vegan, Gluten-Free, Oaxacan). Use an empty list when none apply.
If the city/state is not on the menu, try to infer it from the restaurant
name or other context clues, otherwise omit "location".

If it is NOT a restaurant menu, respond with:
{
  "isMenu": false,
  "error": "This file does not appear to be a restaurant menu."
}

IMPORTANT: Respond with ONLY the JSON object, no other text.
""".strip()
