from fastapi import HTTPException, Request, status

from qrcoded.services.generation_queue import GenerationQueue


def get_generation_queue(request: Request) -> GenerationQueue:
    """
    Return the application's generation queue.
    The queue is created and started by the app lifespan.
    """
    gen_queue = getattr(request.app.state, "generation_queue", None)
    if gen_queue is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Generation queue is not available",
        )
    return gen_queue
