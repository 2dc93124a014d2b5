from datetime import datetime


def next_document_number(model, column, prefix, on_date=None):
    """
    Build the next PREFIX-YYYYMMDD-NNNN number for a model.

    The sequence is the number of documents already issued for that day plus
    one, skipping forward if a number was freed and reused by a deletion.
    """
    on_date = on_date or datetime.utcnow().date()
    stem = f"{prefix}-{on_date.strftime('%Y%m%d')}-"

    sequence = model.query.filter(column.like(f'{stem}%')).count() + 1
    number = f"{stem}{sequence:04d}"
    while model.query.filter(column == number).first() is not None:
        sequence += 1
        number = f"{stem}{sequence:04d}"
    return number
