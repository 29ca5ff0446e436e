from __future__ import annotations

from pathlib import Path

from PIL import Image, ImageDraw


def main() -> None:
    out = Path(__file__).parent / "pages"
    out.mkdir(parents=True, exist_ok=True)

    img = Image.new("RGB", (600, 400), (255, 255, 255))
    d = ImageDraw.Draw(img)

    # round stamp, bottom left
    d.ellipse((60, 220, 180, 340), outline=(170, 30, 40), width=6)
    d.ellipse((85, 245, 155, 315), outline=(170, 30, 40), width=3)

    # signature-like scribble, bottom right
    pts = [(380, 300), (400, 270), (420, 310), (445, 265), (470, 305), (500, 280), (530, 295)]
    d.line(pts, fill=(20, 30, 120), width=4)

    # small speck that the size filter should drop
    d.rectangle((300, 40, 302, 42), fill=(0, 0, 0))

    img.save(out / "page_000.png", format="PNG")


if __name__ == "__main__":
    main()
