"""
Demo catalog and hub network.

Loaded only when SEED_DEMO_DATA is set (startup) or by tests. The API never
falls back to these when the database is unavailable.
"""

import logging

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger("hubroute.seed")

# Prices in CURRENCY units per piece, before volume discount
SAMPLE_PARTS = [
    {
        "id": "part-001",
        "name": "Precision Bracket",
        "description": "High-precision aluminum bracket for mounting",
        "category": "brackets",
        "material": "Aluminum 6061-T6",
        "process": "CNC Milling",
        "base_price": 32.0,
        "lead_time_days": 5,
        "manufacturability": 96,
        "materials": [
            {"name": "Aluminum 6061-T6", "priceMultiplier": 1.0},
            {"name": "Aluminum 7075", "priceMultiplier": 1.3},
            {"name": "Steel 1018", "priceMultiplier": 0.9},
            {"name": "Stainless 304", "priceMultiplier": 1.5},
        ],
        "parameters": [
            {"name": "length", "value": 100, "unit": "mm", "min": 50, "max": 200},
            {"name": "width", "value": 50, "unit": "mm", "min": 25, "max": 100},
            {"name": "height", "value": 25, "unit": "mm", "min": 10, "max": 50},
        ],
    },
    {
        "id": "part-002",
        "name": "Hex Socket Bolt M8",
        "description": "Standard hex socket bolt",
        "category": "fasteners",
        "material": "Steel",
        "process": "CNC",
        "base_price": 4.0,
        "lead_time_days": 3,
        "manufacturability": 99,
        "materials": [
            {"name": "Steel", "priceMultiplier": 1.0},
            {"name": "Stainless 304", "priceMultiplier": 1.5},
            {"name": "Brass", "priceMultiplier": 2.0},
        ],
        "parameters": [
            {"name": "diameter", "value": 8, "unit": "mm", "min": 4, "max": 16},
            {"name": "length", "value": 30, "unit": "mm", "min": 10, "max": 100},
        ],
    },
    {
        "id": "part-003",
        "name": "Electronics Enclosure",
        "description": "Protective enclosure for electronics",
        "category": "enclosures",
        "material": "ABS",
        "process": "3D Printing",
        "base_price": 28.0,
        "lead_time_days": 4,
        "manufacturability": 94,
        "materials": [
            {"name": "ABS", "priceMultiplier": 1.0},
            {"name": "Aluminum 6061-T6", "priceMultiplier": 1.2},
            {"name": "Nylon", "priceMultiplier": 0.9},
        ],
        "parameters": [
            {"name": "length", "value": 150, "unit": "mm", "min": 50, "max": 300},
            {"name": "width", "value": 100, "unit": "mm", "min": 50, "max": 200},
            {"name": "height", "value": 50, "unit": "mm", "min": 20, "max": 100},
        ],
    },
    {
        "id": "part-004",
        "name": "Drive Shaft 20mm",
        "description": "Precision drive shaft for mechanical assemblies",
        "category": "shafts",
        "material": "Steel 1045",
        "process": "CNC Turning",
        "base_price": 45.0,
        "lead_time_days": 5,
        "manufacturability": 98,
        "materials": [
            {"name": "Steel 1045", "priceMultiplier": 1.0},
            {"name": "Stainless 316", "priceMultiplier": 1.8},
            {"name": "Aluminum 7075", "priceMultiplier": 1.1},
        ],
        "parameters": [],
    },
    {
        "id": "part-005",
        "name": "Spur Gear 24T",
        "description": "Precision machined spur gear",
        "category": "gears",
        "material": "Brass",
        "process": "CNC Milling",
        "base_price": 56.0,
        "lead_time_days": 6,
        "manufacturability": 91,
        "materials": [
            {"name": "Brass", "priceMultiplier": 1.0},
            {"name": "Delrin", "priceMultiplier": 0.85},
            {"name": "Steel 1018", "priceMultiplier": 1.2},
        ],
        "parameters": [],
    },
    {
        "id": "part-006",
        "name": "L-Bracket Heavy",
        "description": "Heavy-duty L-bracket for structural applications",
        "category": "brackets",
        "material": "Steel",
        "process": "Sheet Metal",
        "base_price": 18.0,
        "lead_time_days": 2,
        "manufacturability": 97,
        "materials": [
            {"name": "Steel", "priceMultiplier": 1.0},
            {"name": "Aluminum 5052", "priceMultiplier": 1.1},
            {"name": "Stainless 304", "priceMultiplier": 1.6},
        ],
        "parameters": [],
    },
]

SAMPLE_HUBS = [
    {
        "id": "hub-001",
        "name": "TechHub LA",
        "capabilities": ["CNC Milling", "Laser Cutting", "3D Printing"],
        "materials": ["Aluminum", "Steel", "ABS"],
        "rating": 4.9,
        "current_load": 0.6,
        "base_price": 30.0,
        "avg_lead_time": 3,
        "certified": True,
        "completed_jobs": 1234,
        "location": {"city": "Los Angeles", "country": "USA", "lat": 34.0522, "lng": -118.2437},
    },
    {
        "id": "hub-002",
        "name": "MechPrecision Toronto",
        "capabilities": ["CNC Milling", "CNC Turning"],
        "materials": ["Aluminum", "Steel", "Brass"],
        "rating": 4.7,
        "current_load": 0.4,
        "base_price": 25.0,
        "avg_lead_time": 5,
        "certified": True,
        "completed_jobs": 892,
        "location": {"city": "Toronto", "country": "Canada", "lat": 43.6532, "lng": -79.3832},
    },
    {
        "id": "hub-003",
        "name": "FastCut NYC",
        "capabilities": ["Laser Cutting", "Waterjet"],
        "materials": ["Steel", "Aluminum"],
        "rating": 4.8,
        "current_load": 0.7,
        "base_price": 35.0,
        "avg_lead_time": 2,
        "certified": True,
        "completed_jobs": 2156,
        "location": {"city": "New York", "country": "USA", "lat": 40.7128, "lng": -74.006},
    },
    {
        "id": "hub-004",
        "name": "EuroTech Berlin",
        "capabilities": ["CNC Milling", "Sheet Metal", "3D Printing"],
        "materials": ["Aluminum", "Steel", "Stainless", "Brass"],
        "rating": 4.8,
        "current_load": 0.5,
        "base_price": 28.0,
        "avg_lead_time": 4,
        "certified": True,
        "completed_jobs": 1567,
        "location": {"city": "Berlin", "country": "Germany", "lat": 52.52, "lng": 13.405},
    },
    {
        "id": "hub-005",
        "name": "AsiaFab Shenzhen",
        "capabilities": ["CNC Milling", "CNC Turning", "Injection Molding"],
        "materials": ["Aluminum", "Steel", "Plastic", "Titanium"],
        "rating": 4.6,
        "current_load": 0.55,
        "base_price": 20.0,
        "avg_lead_time": 5,
        "certified": True,
        "completed_jobs": 3421,
        "location": {"city": "Shenzhen", "country": "China", "lat": 22.5431, "lng": 114.0579},
    },
]


def seed(db: Session) -> dict:
    """Insert any sample part/hub that is missing. Existing rows are left alone."""
    added = {"parts": 0, "hubs": 0}
    for data in SAMPLE_PARTS:
        if db.get(models.CatalogPart, data["id"]) is None:
            db.add(models.CatalogPart(**data))
            added["parts"] += 1
    for data in SAMPLE_HUBS:
        if db.get(models.Hub, data["id"]) is None:
            db.add(models.Hub(**data))
            added["hubs"] += 1
    db.commit()
    if added["parts"] or added["hubs"]:
        logger.info("Seeded %d demo parts and %d demo hubs", added["parts"], added["hubs"])
    return added
