"""Minimal MyAnimeList-shaped pages for tests."""

import html
import json

from watchthis.scraper import list_url, stats_url, staff_url, user_recs_url

MAL = "https://myanimelist.net"


def series_url_for(title: str) -> str:
    return f"{MAL}/anime/{title.replace(' ', '_')}"


def series_page(details_href: str) -> str:
    return f"""
    <html><body>
      <div id="horiznav_nav"><ul>
        <li><a href="{details_href}">Details</a></li>
        <li><a href="{details_href}/characters">Characters &amp; Staff</a></li>
      </ul></div>
    </body></html>
    """


def stats_page(rows: list[tuple[str, str]]) -> str:
    body = "".join(
        f"""
        <tr>
          <td class="borderClass di-t w100">
            <div class="di-tc va-m al pl4"><a href="/profile/{name}">{name}</a></div>
          </td>
          <td class="borderClass ac">{score}</td>
          <td class="borderClass ac">Completed</td>
        </tr>
        """
        for name, score in rows
    )
    return f"""
    <html><body>
      <table class="table-recently-updated">
        <tr><td class="borderClass">Member</td><td>Score</td><td>Status</td></tr>
        {body}
      </table>
    </body></html>
    """


def _character_table(character: str, role: str, va: str | None) -> str:
    va_cell = ""
    if va:
        va_cell = f"""
        <table><tr>
          <td><a href="/people/{va}">{va}</a><br><small>Japanese</small></td>
          <td><img src="va.jpg"></td>
        </tr></table>
        """
    return f"""
    <table><tr>
      <td><img src="char.jpg"></td>
      <td><a href="/character/{character}">{character}</a><div><small>{role}</small></div></td>
      <td>{va_cell}</td>
    </tr></table>
    """


def characters_page(
    title: str,
    characters: list[tuple[str, str, str | None]] = (),
    staff: list[tuple[str, str]] = (),
    genres: list[str] = (),
) -> str:
    genre_html = "".join(
        f'<a href="/anime/genre/{g}"><span itemprop="genre">{g}</span></a>' for g in genres
    )
    character_html = "".join(_character_table(*c) for c in characters)
    staff_html = "".join(
        f"""
        <tr>
          <td><img src="staff.jpg"></td>
          <td><a href="/people/{name}">{name}</a><div><small>{positions}</small></div></td>
        </tr>
        """
        for name, positions in staff
    )
    return f"""
    <html><body><div id="contentWrapper">
      <div><h1 class="title-name h1_bold_none"><strong>{title}</strong></h1></div>
      <div id="content"><table><tr>
        <td class="borderClass"><div><div><span class="dark_text">Genres:</span>{genre_html}</div></div></td>
        <td><div class="js-scrollfix-bottom-rel">
          {character_html}
          <table>{staff_html}</table>
        </div></td>
      </tr></table></div>
    </div></body></html>
    """


def recs_page(titles: list[str]) -> str:
    rows = "".join(
        f"""
        <div class="borderClass"><table><tr>
          <td valign="top"><img src="rec.jpg"></td>
          <td valign="top"><div><a href="/anime/{t}"><strong>{t}</strong></a></div></td>
        </tr></table></div>
        """
        for t in titles
    )
    return f"<html><body><div class='js-scrollfix-bottom-rel'>{rows}</div></body></html>"


def list_page(titles: list[str]) -> str:
    items = [
        {"anime_title": t, "anime_url": f"/anime/{t.replace(' ', '_')}", "status": 2}
        for t in titles
    ]
    data = html.escape(json.dumps(items), quote=True)
    return f'<html><body><table class="list-table" data-items="{data}"></table></body></html>'


def build_site(
    reference_title: str,
    user_lists: dict[str, list[str]],
    candidate_pages: dict[str, str] | None = None,
    reference_characters: str | None = None,
    recommended: list[str] = (),
    unscored_users: list[str] = (),
) -> tuple[str, dict[str, str]]:
    """
    Pages for a full recommendation run.

    Returns (input URL, pages). Every user in `user_lists` appears on the
    first stats page with a score; `unscored_users` appear with "-" first.
    Candidates without an explicit page get an empty characters page.
    """
    reference_url = series_url_for(reference_title)
    input_url = f"{reference_url}/reviews"
    pages = {input_url: series_page(reference_url)}

    rows = [(name, "-") for name in unscored_users]
    rows += [(name, "8") for name in user_lists]
    pages[stats_url(reference_url, 0)] = stats_page(rows)
    pages[staff_url(reference_url)] = reference_characters or characters_page(reference_title)
    pages[user_recs_url(reference_url)] = recs_page(list(recommended))

    all_titles: set[str] = set()
    for name, titles in user_lists.items():
        pages[list_url(name)] = list_page(titles)
        all_titles.update(titles)

    candidate_pages = candidate_pages or {}
    for title in all_titles - {reference_title}:
        pages[staff_url(series_url_for(title))] = candidate_pages.get(title, characters_page(title))

    return input_url, pages
