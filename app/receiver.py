# receiver.py
# Local stand-in for the email API. Run it, then start the relay with
# RESEND_API_URL=http://127.0.0.1:9090/emails and any RESEND_API_KEY.
import logging
import uuid

import uvicorn
from fastapi import FastAPI, Request

logger = logging.getLogger("app.receiver")

app = FastAPI()
outbox: list[dict] = []


@app.post("/emails")
async def emails(req: Request):
    body = await req.json()
    message_id = str(uuid.uuid4())
    outbox.append({"id": message_id, **body})
    logger.info(f"[SINK] id={message_id} to={body.get('to')} subject={body.get('subject')!r}")
    return {"id": message_id}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=9090)
