from catalog.models import Category, Product


def find_products_by_ids(ids):
    """Return the products whose ids are in `ids`, with their categories loaded.

    Unknown ids are simply absent from the result; callers compare counts.
    """
    return list(Product.objects.select_related("category").filter(id__in=set(ids)))


def find_category_by_id(category_id):
    return Category.objects.filter(id=category_id).first()
