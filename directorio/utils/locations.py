"""
directorio/utils/locations.py — Ecuador provinces/cities and listing categories
Listings store display names (e.g. "Pichincha", "Quito", "Alimentos y Bebidas").
"""
from __future__ import annotations

import unicodedata
from typing import Optional

from pydantic import BaseModel


class Province(BaseModel):
    id: str
    name: str
    city_names: list[str]


class Category(BaseModel):
    id: str
    name: str


def slugify(name: str) -> str:
    """Bolívar -> bolivar, Los Ríos -> los-rios."""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
    return "-".join(ascii_name.lower().replace("(", " ").replace(")", " ").split())


_PROVINCE_CITIES: dict[str, list[str]] = {
    "Azuay": ["Cuenca", "Gualaceo", "Paute"],
    "Bolívar": ["Guaranda", "Chimbo", "San Miguel"],
    "Cañar": ["Azogues", "Biblián", "La Troncal"],
    "Carchi": ["Tulcán", "Montúfar", "Espejo"],
    "Chimborazo": ["Riobamba", "Alausí", "Guano"],
    "Cotopaxi": ["Latacunga", "Salcedo", "Pujilí"],
    "El Oro": ["Machala", "Pasaje", "Santa Rosa"],
    "Esmeraldas": ["Esmeraldas", "Quinindé", "Atacames"],
    "Galápagos": ["Puerto Baquerizo Moreno", "Puerto Ayora", "Puerto Villamil"],
    "Guayas": ["Guayaquil", "Durán", "Samborondón"],
    "Imbabura": ["Ibarra", "Otavalo", "Cotacachi"],
    "Loja": ["Loja", "Catamayo", "Macará"],
    "Los Ríos": ["Babahoyo", "Quevedo", "Ventanas"],
    "Manabí": ["Portoviejo", "Manta", "Chone"],
    "Morona Santiago": ["Macas", "Sucúa", "Gualaquiza"],
    "Napo": ["Tena", "Archidona", "El Chaco"],
    "Orellana": ["Francisco de Orellana (Coca)", "La Joya de los Sachas", "Loreto"],
    "Pastaza": ["Puyo", "Mera", "Santa Clara"],
    "Pichincha": ["Quito", "Cayambe", "Mejía"],
    "Santa Elena": ["Santa Elena", "La Libertad", "Salinas"],
    "Santo Domingo de los Tsáchilas": ["Santo Domingo", "La Concordia"],
    "Sucumbíos": ["Nueva Loja (Lago Agrio)", "Shushufindi", "Gonzalo Pizarro"],
    "Tungurahua": ["Ambato", "Baños", "Pelileo"],
    "Zamora Chinchipe": ["Zamora", "Yantzaza", "Centinela del Cóndor"],
}

PROVINCES: list[Province] = [
    Province(id=slugify(name), name=name, city_names=cities)
    for name, cities in _PROVINCE_CITIES.items()
]

BUSINESS_CATEGORIES: list[Category] = [
    Category(id="alimentos", name="Alimentos y Bebidas"),
    Category(id="ropa", name="Ropa y Accesorios"),
    Category(id="artesanias", name="Artesanías"),
    Category(id="servicios", name="Servicios Profesionales"),
    Category(id="belleza", name="Belleza y Cuidado Personal"),
    Category(id="tecnologia", name="Tecnología"),
    Category(id="hogar", name="Hogar y Decoración"),
    Category(id="mascotas", name="Mascotas"),
    Category(id="deportes", name="Deportes y Fitness"),
    Category(id="educacion", name="Educación y Cursos"),
    Category(id="eventos", name="Eventos y Entretenimiento"),
    Category(id="otros", name="Otros"),
]

BUSINESS_CATEGORY_NAMES = frozenset(c.name for c in BUSINESS_CATEGORIES)


def find_province(name_or_id: str) -> Optional[Province]:
    key = slugify(name_or_id)
    return next((p for p in PROVINCES if p.id == key), None)
