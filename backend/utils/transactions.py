from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern


async def run_in_transaction(db, callback):
    """
    Unit of work for every balance-affecting operation.

    `callback(session)` runs inside one multi-document transaction. Motor's
    with_transaction retries the whole callback on TransientTransactionError
    (write conflicts between concurrent requests) and retries the commit on
    UnknownTransactionCommitResult, so the callback must only touch the
    database through `session`. Any exception aborts every write made so far
    and is re-raised to the caller.
    """
    async with await db.client.start_session() as session:
        return await session.with_transaction(
            callback,
            read_concern=ReadConcern("snapshot"),
            write_concern=WriteConcern("majority"),
        )
