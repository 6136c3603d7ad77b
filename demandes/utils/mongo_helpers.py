# demandes/utils/mongo_helpers.py


def strip_mongo_id(doc):
    """
    Quita el `_id` interno de MongoDB: los documentos se exponen por su campo `id`.
    """
    if not doc:
        return doc
    return {k: v for k, v in doc.items() if k != "_id"}
