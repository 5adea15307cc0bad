"""Application entry point for the formula OCR web service (FastAPI)."""
from __future__ import annotations

from typing import Optional

import uvicorn
from fastapi import FastAPI, File, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from core.config import settings
from core.errors import ErrorKind, RecognitionError
from core.logger import init_logging, logger
from services.ocr.formula_recognizer import FormulaRecognizer

STATUS_BY_KIND = {
    ErrorKind.CLIENT_INPUT: 400,
    ErrorKind.CREDENTIAL_MISSING: 500,
    ErrorKind.UPSTREAM_TRANSIENT: 502,
    ErrorKind.UPSTREAM_PERMANENT: 502,
    ErrorKind.PROCESSING_TIMEOUT: 408,
    ErrorKind.INTERNAL: 500,
}

INDEX_HTML = r"""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width,initial-scale=1">
    <title>Image to LaTeX</title>
    <script>
        window.MathJax = {
            tex: {
                inlineMath: [['$', '$'], ['\\(', '\\)']],
                displayMath: [['$$', '$$'], ['\\[', '\\]']]
            }
        };
    </script>
    <script src="https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js" async></script>
    <style>
        body { font-family: Arial, sans-serif; max-width: 900px; margin: 0 auto; padding: 20px; background: #1e1e1e; color: white; }
        h1 { color: #0078d4; }
        .upload-area { border: 2px dashed #0078d4; padding: 40px; text-align: center; border-radius: 8px; margin: 20px 0; }
        button { background: #0078d4; color: white; padding: 10px 20px; border: none; border-radius: 4px; cursor: pointer; font-size: 16px; }
        button:hover { background: #106ebe; }
        #preview img { max-width: 100%; max-height: 240px; margin-top: 10px; }
        .formula { background: #2b2b2b; padding: 15px; margin: 10px 0; border-radius: 4px; }
        code { background: #1e1e1e; padding: 5px; border-radius: 3px; display: block; margin: 10px 0; white-space: pre-wrap; }
        .error { color: #ff6b6b; }
    </style>
</head>
<body>
    <h1>Image to LaTeX</h1>
    <p>Upload a photo or screenshot of a formula (PNG/JPG/WEBP, up to 3MB)</p>

    <div class="upload-area">
        <input type="file" id="fileInput" accept="image/png,image/jpeg,image/webp" />
        <div id="preview"></div>
        <br>
        <button onclick="recognize()">Recognize</button>
    </div>

    <div id="results"></div>

    <script>
        const fileInput = document.getElementById('fileInput');
        fileInput.addEventListener('change', () => {
            const file = fileInput.files[0];
            const preview = document.getElementById('preview');
            preview.innerHTML = file ? `<img src="${URL.createObjectURL(file)}" alt="preview">` : '';
        });

        function escapeHtml(text) {
            const div = document.createElement('div');
            div.textContent = text;
            return div.innerHTML;
        }

        async function recognize() {
            const file = fileInput.files[0];
            if (!file) {
                alert('Please select an image');
                return;
            }

            const formData = new FormData();
            formData.append('image', file);

            const resultsDiv = document.getElementById('results');
            resultsDiv.innerHTML = '<p>Recognizing...</p>';

            try {
                const response = await fetch('/recognize', { method: 'POST', body: formData });
                const data = await response.json();

                if (data.error) {
                    resultsDiv.innerHTML = `<p class="error">Error: ${escapeHtml(data.error)}</p>`;
                    return;
                }
                resultsDiv.innerHTML = `
                    <div class="formula">
                        <div id="rendered">$$${escapeHtml(data.latex)}$$</div>
                        <p><strong>LaTeX:</strong></p>
                        <code id="latex">${escapeHtml(data.latex)}</code>
                        <button onclick="navigator.clipboard.writeText(document.getElementById('latex').textContent)">Copy</button>
                    </div>
                `;
                if (window.MathJax && MathJax.typesetPromise) {
                    MathJax.typesetPromise([document.getElementById('rendered')]);
                }
            } catch (error) {
                resultsDiv.innerHTML = `<p class="error">Error: ${escapeHtml(error.message)}</p>`;
            }
        }
    </script>
</body>
</html>
"""


def error_response(message: str, kind: ErrorKind, raw: str = "") -> JSONResponse:
    return JSONResponse(
        {
            "error": message,
            "error_kind": kind.value,
            "latex": message,
            "raw": raw or f"Error: {message}",
        },
        status_code=STATUS_BY_KIND.get(kind, 500),
    )


def create_app(recognizer: Optional[FormulaRecognizer] = None) -> FastAPI:
    """Create FastAPI app with the upload page, health and recognition routes."""
    app = FastAPI(title="Formula OCR", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    recognizer = recognizer or FormulaRecognizer()

    @app.on_event("startup")
    async def startup_event() -> None:
        init_logging()
        logger.info("FastAPI service started")

    @app.get("/", response_class=HTMLResponse)
    async def root() -> str:
        """Serve the single-page frontend."""
        return INDEX_HTML

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/")
    @app.post("/recognize")
    async def recognize(image: Optional[UploadFile] = File(None)) -> JSONResponse:
        """Recognize the formula in an uploaded image."""
        if image is None:
            logger.info("Request without an image")
            return error_response("No image uploaded", ErrorKind.CLIENT_INPUT)

        try:
            content = await image.read()
            logger.info(
                "Received file: %s, size: %d, type: %s",
                image.filename, len(content), image.content_type,
            )
            result = await recognizer.recognize_upload(content, image.content_type)
            return JSONResponse(result)
        except RecognitionError as exc:
            logger.warning("Recognition failed (%s): %s", exc.kind.value, exc.message)
            return error_response(exc.message, exc.kind, exc.raw)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Recognition processing failed: %s", exc)
            return error_response(f"Server error: {exc}", ErrorKind.INTERNAL)

    return app


def main() -> None:
    """Entry point for CLI; starts the FastAPI server."""
    init_logging()
    logger.info("Starting FastAPI server at %s:%s", settings.host, settings.port)
    uvicorn.run(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
