import logging
import os

from reelfetch import Settings, create_app

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

settings = Settings.from_env()
app = create_app(settings)

if __name__ == "__main__":
    app.logger.info("yt-dlp: %s | ffmpeg: %s", " ".join(settings.ytdlp_cmd), " ".join(settings.ffmpeg_cmd))
    app.run(host=settings.host, port=settings.port, debug=False, threaded=True)
